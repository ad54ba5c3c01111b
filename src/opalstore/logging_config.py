"""Logging setup for opalstore."""

import logging.config


def configure_logging(level: str = "INFO") -> None:
    """Route opalstore logs to the console with the verbose formatter."""
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "{levelname} {asctime} {module} {message}",
                "style": "{",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "verbose",
            },
        },
        "root": {
            "handlers": ["console"],
            "level": "WARNING",
        },
        "loggers": {
            "opalstore": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
    })
