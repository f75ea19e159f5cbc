"""Background worker that purges dead refresh and password reset tokens."""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

from keepintouch.config import settings
from keepintouch.core.database import SessionLocal
from keepintouch.services.password_reset_service import password_reset_service
from keepintouch.services.refresh_token_service import refresh_token_service

logger = logging.getLogger(__name__)


class TokenCleanupWorker:
    """Periodically hard-deletes revoked, used and expired token records."""

    def __init__(self) -> None:
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._runs: int = 0
        self._deleted_count: int = 0
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="token-cleanup", daemon=True)
        self._thread.start()
        logger.info("Token cleanup worker started")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Token cleanup worker stopped")

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "last_heartbeat": self._heartbeat,
            "runs": self._runs,
            "deleted_count": self._deleted_count,
        }

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as exc:
                logger.exception("Token cleanup failed: %s", exc)
            self._heartbeat = time.time()
            self._stop_event.wait(max(1.0, settings.TOKEN_CLEANUP_INTERVAL_SECONDS))

    def run_once(self) -> Dict[str, int]:
        """Purge both ledgers once and return the deleted counts"""
        db = SessionLocal()
        try:
            result = {
                "refresh_tokens": refresh_token_service.cleanup_expired_tokens(db),
                "password_reset_tokens": password_reset_service.cleanup_expired_tokens(db),
            }
        finally:
            db.close()

        with self._lock:
            self._runs += 1
            self._deleted_count += sum(result.values())
        return result


token_cleanup_worker = TokenCleanupWorker()
