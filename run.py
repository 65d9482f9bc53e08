#!/usr/bin/env python3
"""
Advance Collections Entry Point

Starts the FastAPI server with the collections engine.
"""

import sys

from advance_collections.api import run_server
from advance_collections.config import get_config
from advance_collections.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format)
    logger.info(f"Starting Advance Collections API on {config.api_host}:{config.api_port}")

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down Advance Collections API")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
