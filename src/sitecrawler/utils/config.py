"""
Configuration management for the site crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, fields, replace
from urllib.parse import urlsplit


LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigError(ValueError):
    """Invalid or missing configuration; fatal before crawling starts."""


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_url: str = ""
    workers: int = 4
    request_timeout: float = 30
    user_agent: str = "sitecrawler/1.0"
    max_content_bytes: int = 10 * 1024 * 1024


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _is_number(value, types) -> bool:
    # YAML yes/no load as bools, which are ints to isinstance
    return isinstance(value, types) and not isinstance(value, bool)


def _section(cls, data: Optional[Dict[str, Any]], name: str):
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {', '.join(sorted(unknown))}")

    return cls(**data)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> Config:
        """
        Load configuration from the YAML file, if any, and apply overrides.

        Args:
            overrides: Crawler settings that take precedence over the file
                (None values are ignored)

        Raises:
            ConfigError: The file is unreadable or the result is invalid
        """
        config_data: Dict[str, Any] = {}

        if self.config_path is not None:
            if not self.config_path.exists():
                raise ConfigError(f"Configuration file not found: {self.config_path}")

            try:
                with open(self.config_path, 'r') as file:
                    config_data = yaml.safe_load(file) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid configuration file {self.config_path}: {e}") from e

            if not isinstance(config_data, dict):
                raise ConfigError(f"Configuration file {self.config_path} must contain a mapping")

        try:
            crawler_config = _section(CrawlerConfig, config_data.get('crawler'), 'crawler')
            logging_config = _section(LoggingConfig, config_data.get('logging'), 'logging')
            monitoring_config = _section(MonitoringConfig, config_data.get('monitoring'), 'monitoring')
        except TypeError as e:
            raise ConfigError(str(e)) from e

        if overrides:
            crawler_config = replace(
                crawler_config,
                **{k: v for k, v in overrides.items() if v is not None}
            )

        self._config = Config(
            crawler=crawler_config,
            logging=logging_config,
            monitoring=monitoring_config
        )

        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        crawler = self._config.crawler

        if not crawler.seed_url:
            raise ConfigError("No URL given")

        if not isinstance(crawler.seed_url, str):
            raise ConfigError(f"Seed URL must be a string, got {crawler.seed_url!r}")

        try:
            parsed = urlsplit(crawler.seed_url)
        except ValueError as e:
            raise ConfigError(f"Can't parse URL '{crawler.seed_url}': {e}") from e

        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigError(f"Seed URL must be an absolute http(s) URL: '{crawler.seed_url}'")

        if not _is_number(crawler.workers, int) or crawler.workers < 1:
            raise ConfigError("workers must be an integer of at least 1")

        if not _is_number(crawler.request_timeout, (int, float)) or crawler.request_timeout <= 0:
            raise ConfigError("request_timeout must be a positive number of seconds")

        if not _is_number(crawler.max_content_bytes, int) or crawler.max_content_bytes < 1:
            raise ConfigError("max_content_bytes must be an integer of at least 1")

        if str(self._config.logging.level).upper() not in LOG_LEVELS:
            raise ConfigError(f"Unknown log level: {self._config.logging.level}")

        if not _is_number(self._config.monitoring.prometheus_port, int):
            raise ConfigError("prometheus_port must be an integer")

        logging.getLogger(__name__).debug("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict[str, Any]] = None) -> Config:
    """Load configuration from file and command-line overrides."""
    return ConfigManager(config_path).load_config(overrides)
