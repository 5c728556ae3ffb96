"""
Logging utilities for the site crawler.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Context attached by CrawlerLogAdapter
        if hasattr(record, 'worker'):
            log_entry['worker'] = record.worker

        return json.dumps(log_entry, ensure_ascii=False)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that tags messages with the emitting worker."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Prefix the worker id and attach the adapter context."""
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}

        if 'worker' in self.extra:
            msg = f"worker-{self.extra['worker']}: {msg}"

        return msg, kwargs


class PerformanceFilter(logging.Filter):
    """Filter to suppress noisy connection-level logs."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or [
            'aiohttp.access',
            'aiohttp.client',
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        if any(record.name.startswith(module) for module in self.suppress_modules):
            return False
        return True


def setup_logging(config: Dict[str, Any],
                  enable_json: bool = False,
                  enable_performance_filtering: bool = True) -> logging.Logger:
    """
    Setup logging for the crawler.

    Args:
        config: Logging configuration dictionary (level, format, file)
        enable_json: Enable JSON formatted logging
        enable_performance_filtering: Enable filtering of noisy logs

    Returns:
        Configured root logger
    """
    level = getattr(logging, config.get('level', 'INFO').upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if enable_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    if enable_performance_filtering:
        console_handler.addFilter(PerformanceFilter())
    root_logger.addHandler(console_handler)

    log_file = config.get('file')
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        if enable_performance_filtering:
            file_handler.addFilter(PerformanceFilter())
        root_logger.addHandler(file_handler)

    for logger_name in ('aiohttp', 'asyncio'):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.debug(f"Logging initialized (level={config.get('level', 'INFO')}, "
                      f"file={log_file}, json={enable_json})")

    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """
    Get a crawler-specific logger with additional context.

    Args:
        name: Logger name
        **extra_context: Context fields to include in all log messages

    Returns:
        CrawlerLogAdapter instance
    """
    logger = logging.getLogger(name)
    return CrawlerLogAdapter(logger, extra_context)


def log_system_info():
    """Log system and environment information."""
    import platform
    import psutil

    logger = logging.getLogger(__name__)

    logger.debug(f"Platform: {platform.platform()}")
    logger.debug(f"Python version: {sys.version.split()[0]}")
    logger.debug(f"CPU cores: {psutil.cpu_count()}")
    logger.debug(f"Memory: {psutil.virtual_memory().total / 1024**3:.1f} GB")
