"""Entry point for serving the Enigma API with Uvicorn.

Host, port and log level are read from ``HOST``, ``PORT`` and
``LOG_LEVEL``.  Application settings (``DATABASE_URL``,
``DEFAULT_ADMIN_EMAIL`` and friends) are read by
``enigma_api.app.core.config`` and must be exported before start.

Usage:
    python run.py
"""
import asyncio
import logging
import os

from uvicorn import Config, Server

from enigma_api.app.main import app


async def run_api() -> None:
    """Serve the API until interrupted."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))
    config = Config(app=app, host=host, port=port, reload=False, log_level=os.getenv("LOG_LEVEL", "info").lower())
    server = Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(run_api())
    except (KeyboardInterrupt, SystemExit):
        logging.getLogger(__name__).info("Server stopped")
