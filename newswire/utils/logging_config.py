"""
Logging setup for the newswire process.

Console output is colored for humans or JSON for log shippers. When a log
directory is given, everything at DEBUG goes to a rotating ``newswire.log``
and provider or cache failures (WARNING and up) also go to ``failures.log``.

Stage timings come from ``PerformanceTracker``. Per-stage article counts from
``log_pipeline_metrics`` ride on the record as ``metrics`` so the JSON
formatter emits them as a field.
"""

import asyncio
import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

# Attributes copied from a record into the JSON line when present
CONTEXT_FIELDS = ('section', 'source', 'phase', 'metrics')

# Per-component levels applied after the root level
COMPONENT_LEVELS = {
    'newswire.services.rss': logging.INFO,
    'newswire.services.news_api': logging.INFO,
    'newswire.services.social_api': logging.INFO,
    'newswire.services.http_client': logging.INFO,
    'aiohttp': logging.WARNING,
    'aiosqlite': logging.WARNING,
    'google_genai': logging.WARNING,
    'httpx': logging.WARNING,
}

FILE_FORMAT = '%(asctime)s | %(levelname)-7s | %(name)s | %(message)s'


def _level(name: str) -> int:
    return getattr(logging, (name or 'INFO').upper(), logging.INFO)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'ts': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Short, colored lines: time, level, component, message."""

    COLORS = {
        'DEBUG': '\033[2m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[1;31m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        component = record.name.replace('newswire.', '', 1)
        line = (
            f"{self.COLORS.get(record.levelname, '')}"
            f"{self.formatTime(record, '%H:%M:%S')} {record.levelname[0]} "
            f"{component:<32} {record.getMessage()}{self.RESET}"
        )
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def _file_handlers(log_path: Path, structured: bool) -> List[logging.Handler]:
    log_path.mkdir(parents=True, exist_ok=True)
    formatter = StructuredFormatter() if structured else logging.Formatter(FILE_FORMAT)

    everything = logging.handlers.RotatingFileHandler(
        log_path / 'newswire.log', maxBytes=5 * 1024 * 1024, backupCount=5, encoding='utf-8'
    )
    everything.setLevel(logging.DEBUG)
    everything.setFormatter(formatter)

    failures = logging.FileHandler(log_path / 'failures.log', encoding='utf-8')
    failures.setLevel(logging.WARNING)
    failures.setFormatter(formatter)

    return [everything, failures]


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    enable_file_logging: bool = True,
    enable_structured_logging: bool = False
) -> None:
    """
    Configure the root logger for the process.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files, ``./logs`` when omitted
        enable_file_logging: Also write to files under ``log_dir``
        enable_structured_logging: JSON lines instead of colored text
    """
    root = logging.getLogger()
    root.setLevel(_level(log_level))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr if enable_structured_logging else sys.stdout)
    console.setLevel(_level(log_level))
    console.setFormatter(StructuredFormatter() if enable_structured_logging else ColoredConsoleFormatter())
    root.addHandler(console)

    if enable_file_logging:
        log_path = Path(log_dir) if log_dir else Path.cwd() / 'logs'
        for handler in _file_handlers(log_path, enable_structured_logging):
            root.addHandler(handler)

    configure_component_levels(log_level)


def configure_component_levels(log_level: str) -> None:
    # Provider clients stay at INFO even when the process runs at DEBUG
    for name, level in COMPONENT_LEVELS.items():
        logging.getLogger(name).setLevel(max(level, _level(log_level)))


class PerformanceTracker:
    """
    Times a block and logs how long it took.

    ``duration_ms`` is readable after the block exits, also when it raised.
    """

    def __init__(self, operation_name: str, logger: Optional[logging.Logger] = None):
        self.operation_name = operation_name
        self.logger = logger or logging.getLogger(__name__)
        self._started: Optional[float] = None
        self.duration_ms = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        if exc_type is None:
            self.logger.debug(f"⏱️ {self.operation_name} took {self.duration_ms:.1f}ms")
        elif exc_type is not asyncio.CancelledError:
            self.logger.warning(f"⏱️ {self.operation_name} failed after {self.duration_ms:.1f}ms: {exc_val!r}")
        return False


def log_pipeline_metrics(
    logger: logging.Logger,
    stage: str,
    input_count: int,
    output_count: int,
    duration_ms: float,
    **counts: int
) -> None:
    """Log article counts through a processing stage (fetched → recent → unique → ranked)."""
    metrics = {
        'stage': stage,
        'input': input_count,
        'output': output_count,
        'dropped': input_count - output_count,
        'duration_ms': round(duration_ms, 1),
        **counts,
    }
    detail = ', '.join(f"{k}={v}" for k, v in counts.items())
    logger.info(
        f"📊 {stage}: {input_count} → {output_count} in {duration_ms:.1f}ms" + (f" ({detail})" if detail else ""),
        extra={'metrics': metrics}
    )
