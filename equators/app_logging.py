"""Structured (JSON) logging for the site service."""

import logging

from flask import Flask
from pythonjsonlogger import jsonlogger

FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logger(app: Flask) -> None:
    """Attach a JSON log handler to the root logger, per app config."""
    logfile = app.config.get('LOGFILE')
    if logfile:
        log_handler: logging.Handler = logging.FileHandler(logfile)
    else:
        log_handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        FORMAT,
        rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
    )
    log_handler.setFormatter(formatter)
    logger = logging.getLogger()
    if not any(isinstance(h.formatter, jsonlogger.JsonFormatter)
               for h in logger.handlers):
        logger.addHandler(log_handler)
    logger.setLevel(int(app.config.get('LOGLEVEL', logging.INFO)))
