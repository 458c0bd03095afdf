import sys
import logging
from os import environ
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from logging.handlers import MemoryHandler

import structlog

BUFFER_CAPACITY = int(environ.get("ROTASYNC_LOG_BUFFER", "10000"))


def timestamp_from_record(logger, method_name, event_dict):
    """
    Stamp the event with the time it was logged rather than the time it was
    rendered, buffered records can be rendered much later.
    """
    record = event_dict.get("_record")
    if record is not None:
        event_dict["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
    return event_dict


def extract_from_record(logger, method_name, event_dict):
    """
    Add the originating logger name to the event dict.
    """
    event_dict["logger"] = getattr(logger, "name", "root")
    if not event_dict.get('_from_structlog', False):
        name = getattr(event_dict.get("_record"), "name", "unknown")
        event_dict["logger"] = name

    return event_dict


structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)


def build_formatter(colors: bool) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(processors=[
        timestamp_from_record,
        structlog.stdlib.add_log_level,
        extract_from_record,
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.dev.ConsoleRenderer(
            colors=colors,
            exception_formatter=structlog.dev.plain_traceback,
        ),
    ],)


class BufferedSinkHandler(MemoryHandler):
    """
    Holds every record until the real sink is known, then replays the ones
    the sink accepts.

    Records are only released by ``flush`` once a target is set; until then
    the oldest records are dropped past ``capacity``.
    """

    def __init__(self, capacity: int = BUFFER_CAPACITY):
        super().__init__(capacity, flushLevel=logging.CRITICAL + 1, target=None, flushOnClose=False)

    def shouldFlush(self, record):
        return (self.target is not None) or (len(self.buffer) > self.capacity)

    def flush(self):
        with self.lock:
            if self.target is None:
                del self.buffer[:-self.capacity]
                return
            for record in self.buffer:
                if record.levelno >= self.target.level:
                    self.target.handle(record)
            self.buffer.clear()


buffer_handler = BufferedSinkHandler()
root_logger = logging.getLogger()
root_logger.addHandler(buffer_handler)
root_logger.setLevel(logging.DEBUG)

_sink: Optional[logging.Handler] = None


def is_sink_configured() -> bool:
    return _sink is not None


def configure_sink(log_file: Optional[Path] = None, verbose: bool = False) -> logging.Handler:
    """
    Fixes the log sink, a file when ``log_file`` is given and stdout otherwise,
    and replays everything logged so far into it. Can only happen once.

    Raises:
        RuntimeError: If the sink has already been configured.
    """
    global _sink
    if _sink is not None:
        raise RuntimeError(f"Log sink already configured as {_sink}")

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(build_formatter(colors=False))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(build_formatter(colors=sys.stdout.isatty()))
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    buffer_handler.setTarget(handler)
    buffer_handler.flush()
    root_logger.removeHandler(buffer_handler)
    root_logger.addHandler(handler)
    _sink = handler
    return handler


def reset_sink():
    """
    Drops the configured sink and goes back to buffering, only meant for tests.
    """
    global _sink
    if _sink is not None:
        root_logger.removeHandler(_sink)
        _sink.close()
        _sink = None
    buffer_handler.setTarget(None)
    buffer_handler.buffer.clear()
    if buffer_handler not in root_logger.handlers:
        root_logger.addHandler(buffer_handler)


# 3rd party loggers get set to warning
logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
logging.getLogger("opentelemetry").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
