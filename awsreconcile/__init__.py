"""awsreconcile - create/read/update/delete reconciliation of AWS resources.

Desired configuration is expressed as typed pydantic models, translated into
AWS API requests and driven to a stable remote state by polling the AWS
control plane.
"""

import logging

from awsreconcile.config import get_config

__version__ = "0.1.0"


def configure_logging(config_class=None):
    """
    Configure root logging from a configuration class.

    Args:
        config_class: Configuration class providing LOG_LEVEL and LOG_FORMAT.
                      If None, the class selected by get_config() is used.
    """
    config_class = config_class or get_config()
    logging.basicConfig(
        level=getattr(logging, str(config_class.LOG_LEVEL).upper(), logging.INFO),
        format=config_class.LOG_FORMAT,
    )
