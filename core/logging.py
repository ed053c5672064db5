"""
Process-wide logging setup.

- Entrypoints (worker, schema script) call configure_logging() once.
- Library modules only do `logger = logging.getLogger(__name__)`.
- Replace with structured logs (structlog / python-json-logger) in production.
"""
import logging

from config.settings import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    # SQL echo is noisy at INFO; DEBUG flag on the engine controls it instead
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
