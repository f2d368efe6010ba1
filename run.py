"""Entry point for the Emergency Repair24 API.

Starts the FastAPI application under Uvicorn.  Host and port are read
from the environment variables ``API_HOST`` and ``API_PORT``; all other
configuration (database path, Stripe keys, Google Maps key) is read by
``repair24_api.app.core.config`` from the environment as well.

Usage:
    python run.py
"""
import asyncio
import os

from uvicorn import Config, Server

from repair24_api.app.main import app


async def main() -> None:
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    config = Config(app=app, host=host, port=port, reload=False, log_level="info")
    server = Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
