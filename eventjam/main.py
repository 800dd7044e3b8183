"""
Main entry point for eventjam.

Initializes all components and starts the server.
"""

import logging
import os

import uvicorn

from .config_manager import ConfigManager
from .database import Database
from .events import EventManager
from .expenses import ExpenseManager
from .player_runtime import PlayerRuntime
from .playlist_cache import PlaylistCache
from .playlist_store import PlaylistStore
from .polls import PollManager
from .views import ViewManager
from .web.server import create_app
from .youtube import YouTubeSearch

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000


class EventJamServer:
    """Main server class that orchestrates all components."""

    def __init__(self, db_path=None, host=None, port=None):
        """
        Initialize all components.

        Args:
            db_path: SQLite database path (EVENTJAM_DB_PATH, else ~/.eventjam/eventjam.db)
            host: Bind address (EVENTJAM_HOST, else 0.0.0.0)
            port: Bind port (EVENTJAM_PORT, else 8000)
        """
        logger.info("Initializing eventjam server...")

        self.host = host or os.environ.get("EVENTJAM_HOST") or DEFAULT_HOST
        self.port = int(port or os.environ.get("EVENTJAM_PORT") or DEFAULT_PORT)

        # Initialize database
        self.database = Database(db_path or os.environ.get("EVENTJAM_DB_PATH"))

        # Initialize configuration manager
        self.config_manager = ConfigManager(self.database)

        self.youtube_search = YouTubeSearch(self.config_manager)
        if not self.youtube_search.is_configured():
            logger.warning(
                "YouTube API key not configured. Search will be unavailable. "
                "Set it with PATCH /api/config (key youtube_api_key)."
            )

        self.event_manager = EventManager(self.database)
        self.expense_manager = ExpenseManager(self.database)
        self.poll_manager = PollManager(self.database)
        self.playlist_store = PlaylistStore(self.database)
        self.playlist_cache = PlaylistCache(self.playlist_store, self.config_manager)
        self.view_manager = ViewManager(
            self.playlist_store,
            self.playlist_cache,
            self.config_manager,
            runtime=PlayerRuntime.instance(),
        )

        # Web server
        self.web_app = create_app(
            self.event_manager,
            self.playlist_store,
            self.playlist_cache,
            self.view_manager,
            self.youtube_search,
            self.config_manager,
            self.expense_manager,
            self.poll_manager,
        )

        # Uvicorn server instance (will be created in run())
        self.uvicorn_server = None

        logger.info("eventjam server initialized")

    def run(self):
        """Start the server."""
        web_url = "http://%s:%s" % (self.host, self.port)
        logger.info("=" * 60)
        logger.info("eventjam is running!")
        logger.info("API: %s/api", web_url)
        logger.info("=" * 60)

        # Use uvicorn Server API for better control over shutdown
        config = uvicorn.Config(self.web_app, host=self.host, port=self.port, log_level="info")
        self.uvicorn_server = uvicorn.Server(config)
        self.uvicorn_server.run()

    def stop(self):
        """Stop all components."""
        logger.info("Stopping eventjam server...")

        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True

        if self.view_manager:
            self.view_manager.shutdown()

        if self.playlist_cache:
            self.playlist_cache.clear()

        if self.database:
            self.database.close()

        logger.info("eventjam server stopped")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="eventjam - Collaborative event playlists")
    parser.add_argument("--db-path", help="SQLite database path")
    parser.add_argument("--host", help="Bind address (default %s)" % DEFAULT_HOST)
    parser.add_argument("--port", type=int, help="Bind port (default %d)" % DEFAULT_PORT)
    args = parser.parse_args()

    server = EventJamServer(db_path=args.db_path, host=args.host, port=args.port)
    try:
        server.run()
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


if __name__ == "__main__":
    main()
