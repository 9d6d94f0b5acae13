import logging
import os

from tour_engine.rules.models import Rules

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when the environment does not satisfy the ops rules."""


def validate_ops_rules(rules: Rules) -> None:
    """
    Validate operational requirements before startup.
    """
    missing = [env_var for env_var in rules.ops.required_env if env_var not in os.environ]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    if rules.attribution.enabled and not (
        os.environ.get("META_PIXEL_ID") and os.environ.get("META_ACCESS_TOKEN")
    ):
        logger.warning("Attribution enabled without META_PIXEL_ID/META_ACCESS_TOKEN; events stay pending until retry-dispatch")

    logger.info("Configuration validated")
