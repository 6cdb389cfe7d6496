# logging_config.py
"""
Log plumbing for the bot: TRADE/SUCCESS levels, a rotating human-readable
file, a rotating JSON file and the console. Cycle-scoped messages go through
CycleLoggerAdapter so every line carries its ``[cycle #n]`` tag.
"""

import logging
import json
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

TRADE = 25
SUCCESS = 26
CUSTOM_LEVELS = {"TRADE": TRADE, "SUCCESS": SUCCESS}

HUMAN_FORMAT = '%(asctime)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s'
MAX_LOG_BYTES = 5 * 1024 * 1024


def _level_method(level: int):
    def log_at_level(self, message, *args, **kws):
        if self.isEnabledFor(level):
            self._log(level, message, args, **kws)
    return log_at_level


def setup_custom_log_levels():
    """Registers TRADE and SUCCESS and the matching ``Logger.trade()``/``Logger.success()``. Idempotent."""
    for name, level in CUSTOM_LEVELS.items():
        if not hasattr(logging, name):
            logging.addLevelName(level, name)
            setattr(logging, name, level)
        method = name.lower()
        if not hasattr(logging.Logger, method):
            setattr(logging.Logger, method, _level_method(level))


def get_logger(name: str) -> logging.Logger:
    """Returns a module logger with the TRADE/SUCCESS helpers available."""
    setup_custom_log_levels()
    return logging.getLogger(name)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with the cycle number when there is one."""
    def format(self, record):
        log_object = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineNo": record.lineno
        }
        cycle = getattr(record, "cycle", None)
        if cycle is not None:
            log_object["cycle"] = cycle
        trade_cycle = getattr(record, "trade_cycle", None)
        if trade_cycle is not None:
            log_object["trade_cycle"] = trade_cycle
        if record.exc_info:
            log_object['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(log_object, default=str)


def _rotating_handler(path: str, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=2)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: Optional[Dict[str, Any]] = None):
    """
    Installs the root handlers from the ``logging`` section of the config:
    ``level``, ``log_file`` (human-readable) and ``json_log_file`` (structured).
    Either file can be disabled with null; the console is always on.
    """
    setup_custom_log_levels()
    settings = (config or {}).get("logging") or {}

    root = logging.getLogger()
    root.setLevel(str(settings.get("level", "INFO")).upper())
    root.handlers.clear()

    human_formatter = logging.Formatter(HUMAN_FORMAT)
    outputs = ["console"]

    log_file = settings.get("log_file", "bot.log")
    if log_file:
        root.addHandler(_rotating_handler(log_file, human_formatter))
        outputs.append(log_file)

    json_log_file = settings.get("json_log_file", "bot_structured.log")
    if json_log_file:
        root.addHandler(_rotating_handler(json_log_file, JsonFormatter()))
        outputs.append(json_log_file)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(human_formatter)
    root.addHandler(console_handler)

    logging.info(f"Logging configured ({', '.join(outputs)}).")


class CycleLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the trade cycle sequence number."""
    def process(self, msg, kwargs):
        cycle = self.extra.get("cycle")
        kwargs.setdefault("extra", {})["cycle"] = cycle
        return f"[cycle #{cycle}] {msg}", kwargs

    def trade(self, msg, *args, **kwargs):
        self.log(TRADE, msg, *args, **kwargs)

    def success(self, msg, *args, **kwargs):
        self.log(SUCCESS, msg, *args, **kwargs)
