import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional
import os

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'taskName', 'message', 'asctime',
    'source_crs', 'dest_crs', 'direction',
))


class StructuredJSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record, for log shippers"""

    def __init__(self, service_name: str = "crs-transform"):
        super().__init__()
        self.service_name = service_name
        self.hostname = os.environ.get('HOSTNAME', 'localhost')

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service_name,
            "hostname": self.hostname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Transform context if available
        if hasattr(record, 'source_crs'):
            log_entry["source_crs"] = record.source_crs
        if hasattr(record, 'dest_crs'):
            log_entry["dest_crs"] = record.dest_crs
        if hasattr(record, 'direction'):
            log_entry["direction"] = record.direction

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_entry.setdefault("extra", {})[key] = value

        return json.dumps(log_entry, default=str, separators=(',', ':'))


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for development"""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s | %(levelname)8s | %(name)30s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(
    level: str = "INFO",
    use_json: Optional[bool] = None,
    service_name: str = "crs-transform",
    stream=None
) -> None:
    """Setup logging configuration for the transform engine"""

    if use_json is None:
        use_json = os.environ.get('LOG_FORMAT', '').lower() == 'json'

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)

    if use_json:
        formatter = StructuredJSONFormatter(service_name)
    else:
        formatter = DevelopmentFormatter()

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    configure_transform_loggers(level)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "log_format": "json" if use_json else "development",
            "log_level": level,
            "service": service_name
        }
    )


def configure_transform_loggers(level: str) -> None:
    """Configure specific loggers for engine components"""

    loggers = [
        'crs_transform.coordinate_transform',
        'crs_transform.projection',
        'crs_transform.services.crs_service',
        'crs_transform.services.transform_cache',
        'crs_transform.config',
    ]

    for logger_name in loggers:
        logging.getLogger(logger_name).setLevel(getattr(logging, level.upper()))

    # PROJ network/grid chatter
    logging.getLogger('pyproj').setLevel(logging.WARNING)


def get_transform_logger(source_crs: str, dest_crs: str, name: str = 'crs_transform.coordinate_transform'):
    """Get logger stamping every record with the CRS pair it concerns"""
    logger = logging.getLogger(name)

    class ContextAdapter(logging.LoggerAdapter):
        def process(self, msg, kwargs):
            extra = dict(kwargs.get('extra') or {})
            extra.update({
                'source_crs': source_crs,
                'dest_crs': dest_crs,
            })
            kwargs['extra'] = extra
            return msg, kwargs

    return ContextAdapter(logger, {})
