"""Main application entry point."""

import argparse
import logging

import uvicorn
from dotenv import load_dotenv

from pgportal.api.app import create_app
from pgportal.config import get_portal_config
from pgportal.services.logging import setup_server_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the portal API server."""
    parser = argparse.ArgumentParser(description="PG Tenant Portal")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    args = parser.parse_args()

    # Environment must be loaded before the config singleton is created
    load_dotenv()
    config = get_portal_config()
    setup_server_logging(config.log_file)

    logger.info("Starting Uvicorn server on %s:%d...", args.host, args.port)
    uvicorn.run(create_app(config), host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
