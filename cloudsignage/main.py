"""
Main entry point for cloudsignage.

`cloudsignage serve` runs the admin API; `cloudsignage player` runs a
headless display loop against the same database.
"""

import argparse
import logging
import signal
import threading

import uvicorn

from .config_manager import ConfigManager
from .database import Database
from .datastore import SqliteDatastore
from .identity import DeviceIdentityStore
from .player import Player
from .renderer import HeadlessRenderer
from .timers import ThreadingTimerService
from .web.server import create_app
from .youtube import YouTubeClient

logger = logging.getLogger(__name__)


class SignageServer:
    """Admin API process: datastore, config and the FastAPI app."""

    def __init__(self, db_path=None, host="0.0.0.0", port=8000):
        logger.info("Initializing cloudsignage server...")

        self.database = Database(db_path)
        self.config_manager = ConfigManager(self.database)
        self.datastore = SqliteDatastore(
            self.database,
            max_document_bytes=self.config_manager.get_int("max_document_bytes", 1048576),
            watch_interval=0,  # The API only writes; players watch
        )
        self.youtube_client = YouTubeClient(self.config_manager)

        if not self.youtube_client.is_configured():
            logger.warning(
                "YouTube API key not configured. YouTube clip lookup will be unavailable. "
                "Set youtube_api_key via PATCH /api/config."
            )

        self.web_app = create_app(self.datastore, self.config_manager, self.youtube_client)
        self.host = host
        self.port = port
        self.uvicorn_server = None

    def run(self):
        """Start the server (blocking)."""
        logger.info("=" * 60)
        logger.info("cloudsignage admin API on http://%s:%s/api", self.host, self.port)
        logger.info("=" * 60)

        config = uvicorn.Config(self.web_app, host=self.host, port=self.port, log_level="info")
        self.uvicorn_server = uvicorn.Server(config)
        self.uvicorn_server.run()

    def stop(self):
        logger.info("Stopping cloudsignage server...")
        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True
        self.datastore.close()
        self.database.close()
        logger.info("cloudsignage server stopped")


class PlayerProcess:
    """Headless player process."""

    def __init__(self, db_path=None, device_id=None, state_dir=None):
        self.database = Database(db_path)
        self.config_manager = ConfigManager(self.database)
        self.datastore = SqliteDatastore(
            self.database,
            max_document_bytes=self.config_manager.get_int("max_document_bytes", 1048576),
            watch_interval=self.config_manager.get_float("datastore_watch_seconds", 1.0),
        )
        self.timers = ThreadingTimerService()
        renderer = HeadlessRenderer(
            self.timers, probe=self.config_manager.get_bool("probe_media", False)
        )
        identity = DeviceIdentityStore(f"{state_dir}/device_id" if state_dir else None)
        self.player = Player(self.datastore, self.config_manager, renderer, self.timers, identity)
        self.device_id = device_id
        self._stop_event = threading.Event()

    def run(self):
        """Run until interrupted."""
        self.datastore.start()
        if self.device_id:
            self.player.activate(self.device_id)
        else:
            self.player.start()
        while not self._stop_event.wait(60.0):
            logger.debug("Player status: %s", self.player.get_status())

    def stop(self):
        self._stop_event.set()
        self.player.shutdown()
        self.timers.cancel_all()
        self.datastore.close()
        self.database.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="cloudsignage - Scheduled digital signage")
    parser.add_argument("--db", help="SQLite database path (default: $CLOUDSIGNAGE_DB)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the admin API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    player = subparsers.add_parser("player", help="Run a headless player")
    player.add_argument("--device-id", help="Register as this device (stored for next time)")
    player.add_argument("--state-dir", help="Where the device id is kept")
    player.add_argument(
        "--reset", action="store_true", help="Forget the stored device id before starting"
    )
    return parser


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "serve":
        server = SignageServer(args.db, host=args.host, port=args.port)
        try:
            server.run()
        except KeyboardInterrupt:
            pass
        finally:
            server.stop()
        return 0

    process = PlayerProcess(args.db, device_id=args.device_id, state_dir=args.state_dir)
    if args.reset:
        process.player.identity.clear()
    signal.signal(signal.SIGTERM, lambda signum, frame: process.stop())
    try:
        process.run()
    except KeyboardInterrupt:
        pass
    finally:
        process.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
