"""
Tests for configuration loading and validation.
"""

import pytest

from sitecrawler.utils.config import ConfigError, ConfigManager, load_config


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


def test_defaults_with_overrides_only():
    config = load_config(overrides={'seed_url': 'http://localhost/', 'workers': None})

    assert config.crawler.seed_url == 'http://localhost/'
    assert config.crawler.workers == 4
    assert config.logging.level == 'INFO'
    assert config.monitoring.metrics_enabled is False


def test_load_from_file(tmp_path):
    path = write_config(tmp_path, """
crawler:
  seed_url: "http://example.org/start/"
  workers: 8
  request_timeout: 5
logging:
  level: DEBUG
monitoring:
  metrics_enabled: true
  prometheus_port: 9100
""")

    config = load_config(path)

    assert config.crawler.seed_url == "http://example.org/start/"
    assert config.crawler.workers == 8
    assert config.crawler.request_timeout == 5
    assert config.logging.level == "DEBUG"
    assert config.monitoring.prometheus_port == 9100


def test_overrides_take_precedence(tmp_path):
    path = write_config(tmp_path, "crawler:\n  seed_url: http://a/\n  workers: 8\n")

    config = load_config(path, {'seed_url': 'http://b/', 'workers': 2})

    assert config.crawler.seed_url == 'http://b/'
    assert config.crawler.workers == 2


def test_missing_seed_url():
    with pytest.raises(ConfigError, match="No URL given"):
        load_config()


@pytest.mark.parametrize("workers", [0, -3])
def test_non_positive_workers(workers):
    with pytest.raises(ConfigError, match="workers"):
        load_config(overrides={'seed_url': 'http://localhost/', 'workers': workers})


@pytest.mark.parametrize("url", ["localhost", "/relative/path", "ftp://localhost/", "http://[::1/"])
def test_invalid_seed_url(url):
    with pytest.raises(ConfigError):
        load_config(overrides={'seed_url': url})


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"))


def test_invalid_yaml(tmp_path):
    path = write_config(tmp_path, "crawler: [unclosed\n")

    with pytest.raises(ConfigError, match="Invalid configuration file"):
        load_config(path)


def test_unknown_key(tmp_path):
    path = write_config(tmp_path, "crawler:\n  seed_url: http://a/\n  depth: 3\n")

    with pytest.raises(ConfigError, match="depth"):
        load_config(path)


def test_unknown_log_level(tmp_path):
    path = write_config(tmp_path, "crawler:\n  seed_url: http://a/\nlogging:\n  level: LOUD\n")

    with pytest.raises(ConfigError, match="log level"):
        load_config(path)


def test_config_property_before_load():
    with pytest.raises(ConfigError):
        ConfigManager().config


@pytest.mark.parametrize("key,value", [
    ("request_timeout", '"slow"'),
    ("max_content_bytes", '"10MB"'),
    ("workers", '"four"'),
    ("workers", "yes"),
    ("seed_url", "42"),
])
def test_wrongly_typed_values(tmp_path, key, value):
    crawler = {'seed_url': 'http://a/', key: value}
    path = write_config(tmp_path, "crawler:\n" + "".join(f"  {k}: {v}\n" for k, v in crawler.items()))

    with pytest.raises(ConfigError):
        load_config(path)


def test_boolean_workers_override_rejected():
    with pytest.raises(ConfigError, match="workers"):
        load_config(overrides={'seed_url': 'http://a/', 'workers': True})
