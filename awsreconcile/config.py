import os


def _env_bool(name, default):
    return os.getenv(name, default).lower() == "true"


class Config:
    """Base configuration class with common settings."""

    # AWS settings
    AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
    AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID", "")
    AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    AWS_SESSION_TOKEN = os.getenv("AWS_SESSION_TOKEN", "")
    AWS_ENDPOINT_URL = os.getenv("AWS_ENDPOINT_URL", "")

    # Reconciliation behaviour
    DRY_RUN = _env_bool("DRY_RUN", "False")
    RECONCILE_CONCURRENCY = int(os.getenv("RECONCILE_CONCURRENCY", "5"))

    # Retry policy
    RETRY_MIN_DELAY = float(os.getenv("RETRY_MIN_DELAY", "0.5"))
    RETRY_MAX_DELAY = float(os.getenv("RETRY_MAX_DELAY", "10"))
    # One unconditional attempt after the retry budget runs out
    RETRY_FINAL_ATTEMPT = _env_bool("RETRY_FINAL_ATTEMPT", "True")

    # Wait-for-state polling
    POLL_MIN_INTERVAL = float(os.getenv("POLL_MIN_INTERVAL", "10"))
    POLL_MAX_INTERVAL = float(os.getenv("POLL_MAX_INTERVAL", "10"))
    NOT_FOUND_CHECKS = int(os.getenv("NOT_FOUND_CHECKS", "20"))

    # Per-operation timeouts in seconds
    CREATE_TIMEOUT = int(os.getenv("CREATE_TIMEOUT", "300"))
    UPDATE_TIMEOUT = int(os.getenv("UPDATE_TIMEOUT", "300"))
    DELETE_TIMEOUT = int(os.getenv("DELETE_TIMEOUT", "300"))

    # EMR clusters take much longer than the defaults
    EMR_CREATE_TIMEOUT = int(os.getenv("EMR_CREATE_TIMEOUT", "4500"))
    EMR_CREATE_DELAY = float(os.getenv("EMR_CREATE_DELAY", "30"))
    EMR_UPDATE_TIMEOUT = int(os.getenv("EMR_UPDATE_TIMEOUT", "1200"))
    EMR_DELETE_TIMEOUT = int(os.getenv("EMR_DELETE_TIMEOUT", "1200"))
    EMR_RUN_JOB_FLOW_RETRY_TIMEOUT = int(os.getenv("EMR_RUN_JOB_FLOW_RETRY_TIMEOUT", "30"))

    # Logging settings
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class DevelopmentConfig(Config):
    """Development configuration."""

    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    """Testing configuration."""

    DRY_RUN = False
    RETRY_MIN_DELAY = 0.01
    RETRY_MAX_DELAY = 0.05
    POLL_MIN_INTERVAL = 0.01
    POLL_MAX_INTERVAL = 0.05
    NOT_FOUND_CHECKS = 3

    CREATE_TIMEOUT = 1
    UPDATE_TIMEOUT = 1
    DELETE_TIMEOUT = 1

    EMR_CREATE_TIMEOUT = 1
    EMR_CREATE_DELAY = 0
    EMR_UPDATE_TIMEOUT = 1
    EMR_DELETE_TIMEOUT = 1
    EMR_RUN_JOB_FLOW_RETRY_TIMEOUT = 1


class ProductionConfig(Config):
    """Production configuration."""

    LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")


# Configuration dictionary for easy selection
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(config_name=None):
    """Get configuration class based on environment.

    Args:
        config_name: Configuration name ('development', 'testing', 'production').
                    If None, uses RECONCILER_ENV environment variable or defaults to 'development'.

    Returns:
        Configuration class.
    """
    if config_name is None:
        config_name = os.getenv("RECONCILER_ENV", "development")

    config_class = config.get(config_name, DevelopmentConfig)
    return config_class
