"""
HomeCtl - Main Entry Point
============================
Starts the HomeCtl API server.

Usage:
    python -m homectl.main
    OR
    uvicorn homectl.api:app --host 0.0.0.0 --port 8100
"""
import os

import uvicorn
from loguru import logger

from homectl.config import settings


def configure_logging():
    """Configure loguru logging."""
    os.makedirs(settings.LOGS_DIR, exist_ok=True)

    logger.add(
        os.path.join(settings.LOGS_DIR, "homectl_{time}.log"),
        rotation="10 MB",
        retention="7 days",
        level=settings.LOG_LEVEL,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name}:{function}:{line} - {message}",
    )


def print_banner():
    """Print HomeCtl startup banner."""
    banner = f"""
    +----------------------------------------------+
    |                                              |
    |   HomeCtl  v{settings.APP_VERSION:<10}                        |
    |   Doors - Devices - Voice Assistant          |
    |                                              |
    +----------------------------------------------+
    """
    print(banner)
    print(f"  API Server:    http://localhost:{settings.PORT}")
    print(f"  WebSocket:     ws://localhost:{settings.PORT}/ws")
    print(f"  Remote API:    {settings.REMOTE_API_BASE or 'local only'}")
    print(f"  Storage:       {settings.STORAGE_BACKEND} ({settings.DATA_DIR})")
    print(f"  Areas:         {', '.join(settings.AREAS)}")
    print()


def main():
    """Main entry point."""
    configure_logging()
    print_banner()

    logger.info("Starting HomeCtl...")

    uvicorn.run(
        "homectl.api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
        log_level="info",
        access_log=True,
    )


if __name__ == "__main__":
    main()
