"""Background task that bounds memory by purging expired OTP challenges."""

from __future__ import annotations

import asyncio
import logging

from jbfitness_auth.otp.challenge_store import OtpChallengeStore

logger = logging.getLogger(__name__)


class ExpiredChallengeReaper:
    """Periodically calls :meth:`OtpChallengeStore.purge_expired`.

    Expiry is already enforced lazily on every lookup, so the reaper only
    keeps abandoned challenges from piling up.
    """

    def __init__(self, store: OtpChallengeStore, interval_seconds: float) -> None:
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.is_running:
            logger.warning("Challenge reaper already running")
            return
        self._task = asyncio.create_task(self._run(), name="otp-challenge-reaper")
        logger.info("Challenge reaper started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Challenge reaper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                removed = self._store.purge_expired()
            except Exception:
                logger.exception("Error while purging expired OTP challenges")
                continue
            if removed:
                logger.info("Reaped %d expired OTP challenges", removed)
