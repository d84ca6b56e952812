"""Main API entry point for the cluster profiling service."""

import uvicorn

from clusterprof.api.app import create_app
from clusterprof.config import load_settings
from clusterprof.monitoring.logging import configure_logging, get_logger

settings = load_settings()

configure_logging(
    level=settings.log_level,
    format="json" if settings.is_production else settings.log_format,
    output="file" if settings.log_file else "console",
    log_file=settings.log_file,
)
logger = get_logger(__name__)

app = create_app(settings)


def start() -> None:
    """Start the API server."""
    logger.info("Starting cluster profiling API")
    uvicorn.run(
        "clusterprof.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    start()
