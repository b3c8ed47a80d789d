import logging.config

from core.config import settings


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        # Application packages
        "services": {"handlers": ["console"], "level": settings.LOG_LEVEL, "propagate": False},
        "routes": {"handlers": ["console"], "level": settings.LOG_LEVEL, "propagate": False},
        "tasks": {"handlers": ["console"], "level": settings.LOG_LEVEL, "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}


def configure_logging() -> None:
    logging.config.dictConfig(LOGGING)
