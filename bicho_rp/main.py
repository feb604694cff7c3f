#!/usr/bin/env python3
"""
BichoRP Ledger Application

Main entry point: loads configuration, restores the saved ledger and serves
it through the web gateway until a shutdown signal arrives.
"""

import argparse
import asyncio
import signal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from bicho_rp.lottery.ledger import LedgerStore
from bicho_rp.lottery.registry import AnimalRegistry
from bicho_rp.lottery.storage import SnapshotStorage
from bicho_rp.utils.common import format_credits
from bicho_rp.utils.config import get_config_value, load_config
from bicho_rp.utils.logger import configure_logging, get_logger
from bicho_rp.web_server import LedgerWebServer

logger = get_logger(__name__)


class BichoApp:
    """Wires the registry, snapshot storage, ledger store and web server together."""

    def __init__(self, config_file: Optional[str] = None):
        self.config = load_config(config_file)
        self.store: Optional[LedgerStore] = None
        self.web_server: Optional[LedgerWebServer] = None
        self.running = True

    def _setup_signal_handlers(self) -> None:
        def _handler(signum, frame):
            logger.info(f"📡 Received signal {signum}, initiating graceful shutdown...")
            self.running = False

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)

    def _display_config_summary(self) -> None:
        """Display key configuration options for diagnostics."""
        logger.info("=" * 60)
        logger.info("📋 CONFIGURATION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"💾 Ledger file: {get_config_value(self.config, 'ledger.storage_path')}")
        logger.info(f"💰 Initial credits: {format_credits(get_config_value(self.config, 'ledger.initial_credits', 5000))}")
        logger.info(f"🌍 Server Host: {get_config_value(self.config, 'server.host', '0.0.0.0')}")
        logger.info(f"🔌 Server Port: {get_config_value(self.config, 'server.port', 6080)}")
        logger.info("=" * 60)

    def initialize(self) -> None:
        """Validate the animal table, restore the ledger and build the web server."""
        logger.info("🚀 Initializing BichoRP")
        self._display_config_summary()

        # Fails fast on a broken animal table
        registry = AnimalRegistry()
        logger.info(f"🐾 Animal registry validated ({len(registry)} animals)")

        storage = SnapshotStorage(
            get_config_value(self.config, 'ledger.storage_path', 'bicho_rp_state.json'),
            admin_password=str(get_config_value(self.config, 'ledger.admin_password', 'admin')),
        )
        self.store = LedgerStore.from_storage(storage, registry)
        self.web_server = LedgerWebServer(self.config, self.store)
        logger.info("🎉 Initialization completed")

    async def start(self) -> None:
        """Start the web server and run until a shutdown signal is received."""
        self._setup_signal_handlers()
        if self.web_server is None:
            self.initialize()

        host = get_config_value(self.config, 'server.host', '0.0.0.0')
        port = int(get_config_value(self.config, 'server.port', 6080))

        server_task = asyncio.create_task(self.web_server.start(host=host, port=port))
        try:
            # Give the server a moment to bind; a failed bind finishes the task early
            await asyncio.sleep(0.2)
            if server_task.done() and server_task.exception():
                logger.error(f"Web server task failed during startup: {server_task.exception()}")
                raise server_task.exception()

            counts = self.store.counts()
            logger.info(f"🎲 Serving {counts['users']} users, {counts['bets']} bets, {counts['draws']} draws")

            while self.running and not server_task.done():
                await asyncio.sleep(1)

            logger.info("🛑 Shutdown signal received, stopping application...")
        finally:
            await self.stop()
            if not server_task.done():
                server_task.cancel()

    async def stop(self) -> None:
        self.running = False
        if self.web_server:
            try:
                await self.web_server.stop()
                logger.info("✅ Web server stopped")
            except Exception as e:
                logger.error(f"❌ Error stopping web server: {e}")
        logger.info("🟢 BichoRP stopped")


def load_environment(env_file: str = ".env") -> bool:
    """Load a .env file and re-apply its logging settings.

    Module-level loggers are configured at import time, before the file is
    read, so LOG_LEVEL and LOG_FILE from it only take effect here.
    """
    env_path = Path(env_file)
    loaded = env_path.exists() and load_dotenv(env_path)
    configure_logging()
    return bool(loaded)


def main() -> None:
    parser = argparse.ArgumentParser(description="BichoRP roleplay animal lottery")
    parser.add_argument("--config", help="Path to a JSON config file", default=None)
    parser.add_argument("--env-file", help="Path to a .env file", default=".env")
    args = parser.parse_args()

    if load_environment(args.env_file):
        logger.info(f"Loaded environment from {args.env_file}")

    app = BichoApp(args.config)
    try:
        asyncio.run(app.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
