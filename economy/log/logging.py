"""
Loguru setup for the economy service.

Every record carries the current request id. Standard library loggers are
forwarded through ``InterceptHandler`` and, when ``DD_API_KEY`` is set,
records at ``LOGLEVEL_DATADOG`` or above are shipped to Datadog.
"""

import inspect
import logging
import os
import sys
from logging import StreamHandler

from datadog_api_client.v2 import ApiClient, Configuration
from datadog_api_client.v2.api.logs_api import LogsApi
from datadog_api_client.v2.model.content_encoding import ContentEncoding
from datadog_api_client.v2.model.http_log import HTTPLog
from datadog_api_client.v2.model.http_log_item import HTTPLogItem
from loguru import logger as loguru_logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS Z}</green> | "
    "<level>{level: <8}</level> | "
    "<blue>[{extra[request_id]}]</blue> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level> | <level>{extra}</level>"
)
NO_REQUEST_ID = "no-request-id"


def get_request_id_for_logging() -> str:
    # imported here: the middleware imports settings, which log through this module
    from economy.middleware.request_context import get_request_id
    return get_request_id() or NO_REQUEST_ID


class LogConfig:
    def __init__(self):
        self.environment = os.getenv('ENVIRONMENT', 'development')
        self.service = os.getenv('SERVICE_NAME', 'economyService')
        self.hostname = os.getenv('HOSTNAME', 'unknown')
        self.loglevel = os.getenv('LOGLEVEL', 'INFO')
        self.loglevel_dd = os.getenv('LOGLEVEL_DATADOG', 'ERROR')
        self.dd_api_key = os.getenv('DD_API_KEY', '')

    @property
    def datadog_enabled(self) -> bool:
        return len(self.dd_api_key) > 1


logconfig = LogConfig()


class InterceptHandler(logging.Handler):
    """Route standard library log records (uvicorn, sqlalchemy, alembic) into loguru."""

    _RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = inspect.currentframe(), 0
        while frame:
            filename = frame.f_code.co_filename
            in_logging = filename == logging.__file__
            in_bootstrap = "importlib" in filename and "_bootstrap" in filename
            if depth > 0 and not (in_logging or in_bootstrap):
                break
            frame = frame.f_back
            depth += 1

        extra = {key: value for key, value in vars(record).items() if key not in self._RESERVED}
        (loguru_logger
         .opt(depth=depth, exception=record.exc_info)
         .bind(**extra)
         .log(level, record.getMessage()))


class DatadogHandler(StreamHandler):
    """Ship log records to the Datadog HTTP intake."""

    def __init__(self):
        super().__init__()
        self.api_instance = LogsApi(ApiClient(Configuration()))

    def _payload(self, record) -> dict:
        extra = {key: str(value) for key, value in getattr(record, "extra", {}).items()}
        return {
            "status": record.levelname,
            "ddsource": "loguru",
            "ddtags": f"level:{record.levelname},env:{logconfig.environment}",
            "message": self.format(record),
            "service": logconfig.service,
            "timestamp": str(record.created),
            "hostname": logconfig.hostname,
            **extra,
            "request_id": extra.get("request_id", get_request_id_for_logging()),
        }

    def emit(self, record):
        body = HTTPLog([HTTPLogItem(**self._payload(record))])
        self.api_instance.submit_log(content_encoding=ContentEncoding.DEFLATE, body=body)


def request_id_patcher(record):
    record["extra"]["request_id"] = get_request_id_for_logging()


def init_logging():
    loguru_logger.remove()
    loguru_logger.configure(patcher=request_id_patcher)
    loguru_logger.add(sys.stdout, format=CONSOLE_FORMAT, level=logconfig.loglevel)

    if logconfig.datadog_enabled:
        loguru_logger.add(DatadogHandler(), level=logconfig.loglevel_dd)
    else:
        loguru_logger.warning("Datadog API key is not set. Logging to console only.")
    return loguru_logger


logger = init_logging()
