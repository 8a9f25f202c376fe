#!/usr/bin/env python3
"""
peerbook server entry point.

Loads settings from the environment, connects the store, clears stale online
flags and serves the HTTP API.
"""

import sys
from typing import Optional

from aiohttp import web
from loguru import logger

from .api import create_app
from .config import Settings
from .directory import PeerDirectory
from .store import KVStore, PoolFactory
from .turn import CredentialIssuer


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a single stderr sink at level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} - {message}",
    )


def build_app(settings: Settings, pool_factory: Optional[PoolFactory] = None) -> web.Application:
    """
    Wire the store, directory and issuer together.

    Runs the startup sweep that marks every peer offline, since no session
    survives a restart.
    """
    store = KVStore(settings.redis_url, settings.redis_max_connections, pool_factory)
    store.connect()
    PeerDirectory(store).reset_all_online()

    app = create_app(store, CredentialIssuer(settings.turn_secret))

    async def close_store(app: web.Application) -> None:
        store.close()

    app.on_cleanup.append(close_store)
    return app


def main() -> None:
    """Main entry point."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    logger.info("Starting peerbook")
    logger.info(f"Store: {settings.redis_url}")
    logger.info(f"HTTP: {settings.host}:{settings.port}")

    app = build_app(settings)
    web.run_app(app, host=settings.host, port=settings.port, print=None)
    logger.info("Server stopped")


if __name__ == "__main__":
    main()
