import logging

_LOGGERS = {}

FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """
    Create or retrieve a named logger under the ``uniawards`` namespace.

    Handlers are attached once per name so repeated imports and app factories
    do not duplicate output.
    """
    if name in _LOGGERS:
        return _LOGGERS[name]

    logger = logging.getLogger(f"uniawards.{name}")
    logger.setLevel(level)

    if not logger.handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(FORMAT))
        logger.addHandler(console)

    _LOGGERS[name] = logger
    return logger


def set_level(level: str) -> None:
    for logger in _LOGGERS.values():
        logger.setLevel(level)
