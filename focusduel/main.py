"""
Application bootstrap for FocusDuel clients.
"""

from typing import Optional
import structlog

from .config import get_config, setup_directories
from .utils.logging import setup_logging
from .database import ChallengeOps, get_database_manager, close_database
from .sync import RemoteSync
from .cache import LocalCache
from .challenge import ChallengeSession, SessionListener

logger: Optional[structlog.BoundLogger] = None


class FocusDuelApp:
    """Builds the client session and owns its resources."""

    def __init__(self, listener: Optional[SessionListener] = None):
        self.config = get_config()
        self.listener = listener
        self.session: Optional[ChallengeSession] = None
        self.is_running = False

    async def startup(self) -> bool:
        """Start up the application."""
        global logger
        logger = setup_logging()
        logger.info("Starting FocusDuel client")

        setup_directories()

        try:
            await get_database_manager()
        except RuntimeError as e:
            # The session still works from the local cache; writes warn until reachable
            logger.warning("Remote store unavailable at startup", error=str(e))

        self.session = ChallengeSession(
            remote_sync=RemoteSync(ChallengeOps()),
            local_cache=LocalCache(self.config.cache_path),
            listener=self.listener,
        )
        restored = await self.session.restore()
        self.is_running = True

        logger.info("FocusDuel client started",
                    restored_challenge=restored.id if restored else None)
        return True

    async def shutdown(self):
        """Shutdown the application."""
        if logger:
            logger.info("Shutting down FocusDuel client")

        self.is_running = False

        if self.session:
            await self.session.close()
        await close_database()

        if logger:
            logger.info("FocusDuel client shutdown complete")
