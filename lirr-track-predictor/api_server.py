import logging
import os

import uvicorn
from api.app import create_app
from config import load_config
from logging_setup import setup_logging
from uvicorn.config import LOGGING_CONFIG


def run_main() -> None:
    """Serve the prediction API with uvicorn; the learning loop runs in its lifespan."""
    setup_logging()
    config = load_config()

    # JSON mode: uvicorn records go through the root handlers instead of its own config
    json_logs = os.getenv("LTP_LOG_JSON", "false").lower() == "true"
    if json_logs:
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            logging.getLogger(name).propagate = True

    uvicorn.run(
        create_app(origins=config.cors_origins),
        host="0.0.0.0",
        port=config.api_port,
        loop="uvloop",
        http="h11",
        lifespan="on",
        log_config=None if json_logs else LOGGING_CONFIG,
    )
