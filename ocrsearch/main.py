"""Application entry point for the image text search API server."""

import uvicorn

from ocrsearch.api.app import create_app
from ocrsearch.utils.config import load_config
from ocrsearch.utils.logger import setup_logging


def main() -> None:
    """Start the FastAPI application server."""
    config = load_config()
    setup_logging(config.log_level)
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
