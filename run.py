#!/usr/bin/env python3
"""
Lending Marketplace Entry Point

Starts the FastAPI server with the lending core.
"""

import sys

from lending_core.api import run_server
from lending_core.config import get_config
from lending_core.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    logger.info("Starting lending API on %s:%s (storage: %s)",
                config.api_host, config.api_port, config.storage_backend)

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False
        )
    except KeyboardInterrupt:
        logger.info("Shutting down lending API")
    except Exception as e:
        logger.error("Error starting server: %s", e)
        sys.exit(1)
