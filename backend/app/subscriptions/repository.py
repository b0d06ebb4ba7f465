"""PostgreSQL persistence for per-user subscription lists."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor
from pydantic import ValidationError

from backend.app_context import get_conn

from .models import Subscription

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_subscriptions (
    user_id TEXT PRIMARY KEY,
    subscriptions JSONB NOT NULL DEFAULT '[]'::jsonb,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _rows_to_subscriptions(user_id: str, payload: object) -> List[Subscription]:
    if not isinstance(payload, list):
        return []
    subscriptions: List[Subscription] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        try:
            subscriptions.append(Subscription.model_validate(item))
        except ValidationError:
            logger.warning(
                "Skipping malformed subscription record for user %s: %s",
                user_id,
                item.get("id"),
            )
    return subscriptions


class PostgresSubscriptionRecordStore:
    """Stores each user's subscription list as a single JSONB document."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        with managed_connection(self._conn) as (connection, _):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cursor:
            cursor.execute(SCHEMA_SQL)

    def load(self, user_id: str) -> List[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT subscriptions
                FROM user_subscriptions
                WHERE user_id = %s
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            return _rows_to_subscriptions(user_id, row["subscriptions"]) if row else []

    def save(self, user_id: str, subscriptions: Sequence[Subscription]) -> None:
        document = [subscription.model_dump(mode="json") for subscription in subscriptions]
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO user_subscriptions (user_id, subscriptions)
                VALUES (%s, %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    subscriptions = EXCLUDED.subscriptions,
                    updated_at = NOW()
                """,
                (user_id, psycopg2.extras.Json(document)),
            )
            if cursor.rowcount < 1:
                raise RuntimeError("Failed to persist subscriptions")

    def user_ids(self) -> List[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT user_id
                FROM user_subscriptions
                ORDER BY user_id
                """
            )
            rows = cursor.fetchall() or []
            return [str(row["user_id"]) for row in rows]


__all__ = ["PostgresSubscriptionRecordStore", "SCHEMA_SQL"]
