"""
Main entry point for Omega Review.
"""

from .api import app  # noqa: F401

if __name__ == "__main__":
    import logging

    import uvicorn

    from .config import get_settings

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    uvicorn.run(
        "omega_review.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1,
    )
