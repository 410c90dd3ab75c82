from logging.config import dictConfig

import structlog

LOGGER_NAME = "filmscore"

# Applied to records from the stdlib loggers before rendering; ``ExtraAdder``
# lifts the ``extra=`` fields into the event dict.
PRE_CHAIN = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.ExtraAdder(),
]


def create_log_config(log_level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.format_exc_info,
                    structlog.processors.JSONRenderer(),
                ],
                "foreign_pre_chain": PRE_CHAIN,
            },
        },
        "handlers": {
            "default": {
                "formatter": "json",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            LOGGER_NAME: {"handlers": ["default"], "level": log_level.upper(), "propagate": False},
            "httpx": {"level": "WARNING"},
        },
    }


def configure_logging(log_level: str = "INFO") -> None:
    dictConfig(create_log_config(log_level))
