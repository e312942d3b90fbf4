#!/usr/bin/env python3
"""
Receivables Anticipation Engine Entry Point

Starts the FastAPI server with settings taken from ANTECIPA_* environment
variables (see anticipation_core/config.py).
"""

import sys

from anticipation_core.config import get_config
from anticipation_core.logging_config import setup_logging
from anticipation_core.api import run_server


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    logger.info("Starting payment plan engine on %s:%s (storage: %s)",
                config.api_host, config.api_port, config.database_url)

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            reload=config.api_reload,
            log_level=config.log_level
        )
    except KeyboardInterrupt:
        logger.info("Shutting down payment plan engine")
    except Exception as e:
        logger.error("Error starting server: %s", e)
        sys.exit(1)
