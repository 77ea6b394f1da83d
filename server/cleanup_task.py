"""Background task that expires abandoned upload sessions."""

import asyncio
from typing import Optional

from common.logging_config import get_logger
from server.upload_service import UploadService

logger = get_logger(__name__)

SWEEP_INTERVAL_SECONDS = 60.0
SESSION_IDLE_TIMEOUT_SECONDS = 24 * 3600.0


class SessionSweeper:
    """
    Background task that periodically expires idle upload sessions.

    A client that abandons a transfer leaves its session and staged chunks
    behind; the sweeper removes them once they have been idle longer than
    the configured timeout.
    """

    def __init__(
        self,
        upload_service: UploadService,
        interval_seconds: float = SWEEP_INTERVAL_SECONDS,
        idle_timeout_seconds: float = SESSION_IDLE_TIMEOUT_SECONDS,
    ):
        """
        Initialize sweeper task.

        Args:
            upload_service: Service owning the sessions to sweep
            interval_seconds: Time between sweeps (default 60 seconds)
            idle_timeout_seconds: Inactivity after which a session expires (default 24 hours)
        """
        self.upload_service = upload_service
        self.interval_seconds = interval_seconds
        self.idle_timeout_seconds = idle_timeout_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._running:
            logger.warning("Session sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Started session sweeper (interval: {self.interval_seconds}s, "
            f"idle timeout: {self.idle_timeout_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Stopped session sweeper")

    async def sweep_once(self) -> int:
        """
        Execute one sweep cycle.

        Returns:
            Number of sessions expired
        """
        expired = await self.upload_service.expire_idle_sessions(self.idle_timeout_seconds)
        if expired:
            logger.info(f"Sweep complete: {expired} idle sessions expired")
        else:
            logger.debug("Sweep complete: no idle sessions")
        return expired

    async def _run(self) -> None:
        """Main loop for sweep task."""
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                await self.sweep_once()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in session sweeper: {e}", exc_info=True)
