"""Server entry point."""

import logging
import os

import uvicorn

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the API server with uvicorn."""
    port = int(os.environ.get("PORT", 8000))
    host = os.environ.get("HOST", "0.0.0.0")

    logger.info(f"Starting server on {host}:{port}")

    uvicorn.run(
        "sparq_ai.main:app",
        host=host,
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
