import logging
import sys

def setup_logging():
    """
    Configure logging for the survey service.

    Logs go to stdout with the level and logger name so uploads, mapping
    changes and sync retries can be followed in container logs.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # Reduce SQLAlchemy and HTTP client noise in logs
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("surveyhub")


# Create global logger instance
logger = setup_logging()
