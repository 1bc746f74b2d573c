"""
Run the API server.

Usage:
    python -m imagestudio
"""

import uvicorn

from imagestudio.core.config import settings
from imagestudio.core.logging_config import configure_logging


def main():
    configure_logging(settings.LOG_LEVEL)
    # The API and client are served from the same port
    uvicorn.run("imagestudio.main:app", host="0.0.0.0", port=5000, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
