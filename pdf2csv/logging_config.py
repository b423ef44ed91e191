import logging
import logging.config

FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_logging_config(level: str = "INFO") -> dict:
    level = (level or "INFO").upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,  # keep werkzeug / botocore loggers
        "formatters": {
            "default": {"format": FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
        "loggers": {
            "pdf2csv": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
            "werkzeug": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(build_logging_config(level))
