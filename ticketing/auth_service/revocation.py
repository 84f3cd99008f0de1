"""
Revocation ledger for session tokens.

Signing out lists the literal token here. A listed token is rejected by the
request gate even though its signature and expiry are still valid. Entries
older than the retention window are pruned by a background thread; since the
window is never shorter than the token lifetime, a pruned token has already
expired on its own.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from ticketing import config
from ticketing.database.db_connection import get_db
from ticketing.database.models import RevokedToken, utcnow


def revoke(token: str, now: Optional[datetime] = None) -> None:
    """
    Record `token` as revoked. Revoking an already revoked token is a no-op.
    """
    now = now or utcnow()
    try:
        with get_db(write=True) as db:
            if db.get(RevokedToken, token) is not None:
                return
            db.add(RevokedToken(token=token, created_at=now))
            db.flush()
    except IntegrityError:
        # Another request listed the same token first
        return
    logging.info("[Revocation] Token revoked")


def is_revoked(token: str) -> bool:
    with get_db() as db:
        found = db.scalar(select(RevokedToken.token).where(RevokedToken.token == token))
    return found is not None


def prune(retention: Optional[timedelta] = None, now: Optional[datetime] = None) -> int:
    """
    Delete entries created before `now - retention`.

    Args:
        retention (timedelta, optional): Defaults to REVOCATION_RETENTION_MINUTES.
        now (datetime, optional): Reference time, defaults to the current UTC time.

    Returns:
        int: Number of entries removed.
    """
    if retention is None:
        retention = timedelta(minutes=config.REVOCATION_RETENTION_MINUTES)
    cutoff = (now or utcnow()) - retention

    with get_db(write=True) as db:
        removed = db.execute(
            delete(RevokedToken)
            .where(RevokedToken.created_at < cutoff)
            .execution_options(synchronize_session=False)
        ).rowcount

    return removed or 0


class RevocationPruner:
    """
    Daemon thread that prunes the ledger on a fixed period.

    Each cycle is one short delete; no lock is held between cycles, so
    is_revoked() checks from request threads are never blocked by it.
    """

    def __init__(self, interval: Optional[timedelta] = None, retention: Optional[timedelta] = None):
        self.interval = interval or timedelta(minutes=config.REVOCATION_PRUNE_INTERVAL_MINUTES)
        self.retention = retention
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> int:
        removed = prune(self.retention)
        if removed:
            logging.info(f"[Revocation] Pruned {removed} revoked token(s) past retention")
        return removed

    def _worker(self) -> None:
        while not self._stop_event.wait(self.interval.total_seconds()):
            try:
                self.run_once()
            except Exception as e:
                # Keep the cycle alive; the next period retries
                logging.error(f"[Revocation] Prune cycle failed: {e}")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, name="revocation-pruner", daemon=True)
        self._thread.start()
        logging.info(f"[Revocation] Pruner started, every {self.interval}")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
