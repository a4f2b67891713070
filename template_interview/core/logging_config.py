import logging

from template_interview.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Configure root logging once, from settings.log_level."""
    settings = get_settings()
    level = logging.DEBUG if settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO
    )
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # boto / anthropic are chatty at DEBUG
    for name in ("botocore", "boto3", "urllib3", "httpx", "anthropic"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
