"""Scheduler integration for the daily subscription expiry sweep."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from threading import Event, Lock, Thread
from typing import Dict, Optional

from backend.app.services.subscriptions import get_subscription_service
from backend.app.subscriptions import SweepSummary, load_subscription_config

logger = logging.getLogger(__name__)

_scheduler_lock = Lock()
_worker: Optional["_SweepWorker"] = None

_SWEEP_METRICS: Dict[str, object] = {
    "users_processed": 0,
    "subscriptions_expired": 0,
    "failures": 0,
    "last_run_at": None,
    "last_success_at": None,
    "last_error": None,
}
_metrics_lock = Lock()


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["last_run_at"] = started_at


def _record_run_success(completed_at: datetime, summary: SweepSummary) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["users_processed"] = int(_SWEEP_METRICS["users_processed"]) + summary.users_processed
        _SWEEP_METRICS["subscriptions_expired"] = (
            int(_SWEEP_METRICS["subscriptions_expired"]) + summary.subscriptions_expired
        )
        _SWEEP_METRICS["failures"] = int(_SWEEP_METRICS["failures"]) + summary.failures
        _SWEEP_METRICS["last_success_at"] = completed_at
        _SWEEP_METRICS["last_error"] = None


def _record_run_failure(failed_at: datetime, error: Exception) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["failures"] = int(_SWEEP_METRICS["failures"]) + 1
        _SWEEP_METRICS["last_error"] = f"{type(error).__name__}: {error}"


def run_expiry_sweep_job(*, now: Optional[datetime] = None) -> SweepSummary:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    _record_run_start(current_time)
    try:
        summary = get_subscription_service().on_schedule_tick(now=current_time)
    except Exception as exc:
        _record_run_failure(current_time, exc)
        logger.exception("Subscription expiry sweep failed")
        raise
    else:
        _record_run_success(current_time, summary)
        logger.info(
            "Subscription expiry sweep completed",
            extra={
                "users_processed": summary.users_processed,
                "subscriptions_expired": summary.subscriptions_expired,
                "failures": summary.failures,
            },
        )
        return summary


class _SweepWorker(Thread):
    def __init__(self, *, initial_delay: float, interval: float):
        super().__init__(daemon=True, name="subscription-expiry-sweep")
        self._initial_delay = max(0.0, initial_delay)
        self._interval = max(1.0, interval)
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        if self._stop_event.wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                run_expiry_sweep_job()
            except Exception:
                # Logged inside run_expiry_sweep_job; keep the schedule alive.
                pass
            if self._stop_event.wait(self._interval):
                break


def _seconds_until(hour: int, minute: int = 0, *, now: Optional[datetime] = None) -> float:
    current = now or datetime.now(timezone.utc)
    target = current.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= current:
        target += timedelta(days=1)
    return max((target - current).total_seconds(), 0.0)


def start_expiry_sweep_scheduler() -> None:
    global _worker

    with _scheduler_lock:
        if _worker is not None:
            return
        config = load_subscription_config()
        initial_delay = _seconds_until(config.sweep_hour_utc)
        _worker = _SweepWorker(
            initial_delay=initial_delay,
            interval=config.sweep_interval_hours * 60 * 60,
        )
        _worker.start()
        logger.info(
            "Subscription expiry scheduler started",
            extra={"initial_delay_seconds": round(initial_delay, 2)},
        )


def shutdown_expiry_sweep_scheduler() -> None:
    global _worker

    with _scheduler_lock:
        if _worker is None:
            return
        _worker.stop()
        _worker.join(timeout=1.0)
        _worker = None
        logger.info("Subscription expiry scheduler stopped")


def get_sweep_metrics() -> Dict[str, object]:
    with _metrics_lock:
        last_run_at = _SWEEP_METRICS.get("last_run_at")
        last_success_at = _SWEEP_METRICS.get("last_success_at")
        return {
            **_SWEEP_METRICS,
            "last_run_at": last_run_at.isoformat() if last_run_at else None,
            "last_success_at": last_success_at.isoformat() if last_success_at else None,
        }


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        _SWEEP_METRICS.update(
            {
                "users_processed": 0,
                "subscriptions_expired": 0,
                "failures": 0,
                "last_run_at": None,
                "last_success_at": None,
                "last_error": None,
            }
        )


__all__ = [
    "get_sweep_metrics",
    "run_expiry_sweep_job",
    "shutdown_expiry_sweep_scheduler",
    "start_expiry_sweep_scheduler",
]
