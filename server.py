# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""
Server script for running the assistant gateway API.
"""

import argparse
import logging

import uvicorn

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the assistant gateway API server")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload (default: False)")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind the server to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=5000, help="Port to bind the server to (default: 5000)")
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    parser.add_argument("--debug", action="store_true", help="Shortcut for --log-level debug")

    args = parser.parse_args()
    log_level = "debug" if args.debug else args.log_level
    logging.getLogger().setLevel(log_level.upper())

    logger.info("Starting assistant gateway on %s:%d", args.host, args.port)
    try:
        uvicorn.run(
            "src.server:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level=log_level,
        )
    except Exception as e:
        logger.error(f"Failed to start server: {str(e)}")
        raise SystemExit(1)
