from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from ..http import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "DRUPALCHECK_CONFIG_PATH"


# -----------------------------
# Models
# -----------------------------

@dataclass(frozen=True)
class HttpSettings:
    connect_timeout: float = 5.0
    total_timeout: float = 5.0
    max_redirects: int = 5
    rps: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT


@dataclass(frozen=True)
class CheckSettings:
    concurrency: int = 4


@dataclass(frozen=True)
class Settings:
    http: HttpSettings = field(default_factory=HttpSettings)
    check: CheckSettings = field(default_factory=CheckSettings)
    log_level: str = "INFO"


# -----------------------------
# Helpers
# -----------------------------

def _read_yaml(path: str) -> dict:
    p = Path(path)
    if not p.exists():
        logger.error("YAML config not found: %s", path)
        raise FileNotFoundError(path)

    try:
        content = p.read_text(encoding="utf-8")
        logger.debug("YAML config read: %s bytes", len(content))
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as exc:
        logger.error("YAML parse error: %s", exc)
        raise


def _optional_dict(data: dict, key: str) -> dict:
    """Секция может отсутствовать, но если есть — обязана быть словарём."""
    v = data.get(key)
    if v is None:
        return {}
    if not isinstance(v, dict):
        logger.error("Config section '%s' is not a dict", key)
        raise KeyError(f"bad section: {key}")
    return v


def _positive(name: str, value: float) -> float:
    if value <= 0:
        logger.error("%s must be > 0", name)
        raise ValueError(f"{name} must be > 0")
    return value


# -----------------------------
# Public API
# -----------------------------

def load_settings(path: Optional[str] = None) -> Settings:
    """
    Единая точка загрузки настроек.

    Путь к YAML: аргумент или ENV DRUPALCHECK_CONFIG_PATH. Если не задан ни один —
    используются значения по умолчанию (5s connect / 5s total, 5 редиректов).
    Уровень логирования: ENV LOG_LEVEL.
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    yaml_path = path or os.getenv(CONFIG_PATH_ENV)
    if not yaml_path:
        logger.debug("No YAML config given, using defaults")
        return Settings(log_level=log_level)

    logger.info("Loading YAML config: %s", yaml_path)
    data = _read_yaml(yaml_path)
    http = _optional_dict(data, "http")
    check = _optional_dict(data, "check")

    defaults = HttpSettings()
    http_settings = HttpSettings(
        connect_timeout=_positive("http.connect_timeout", float(http.get("connect_timeout", defaults.connect_timeout))),
        total_timeout=_positive("http.total_timeout", float(http.get("total_timeout", defaults.total_timeout))),
        max_redirects=int(http.get("max_redirects", defaults.max_redirects)),
        rps=_positive("http.rps", float(http.get("rps", defaults.rps))),
        user_agent=str(http.get("user_agent", defaults.user_agent)),
    )
    if http_settings.max_redirects < 0:
        logger.error("http.max_redirects must be >= 0")
        raise ValueError("http.max_redirects must be >= 0")

    concurrency = int(check.get("concurrency", CheckSettings.concurrency))
    _positive("check.concurrency", concurrency)
    check_settings = CheckSettings(concurrency=concurrency)

    settings = Settings(http=http_settings, check=check_settings, log_level=log_level)
    logger.info(
        "Settings loaded: connect_timeout=%s total_timeout=%s max_redirects=%s rps=%s concurrency=%s",
        http_settings.connect_timeout,
        http_settings.total_timeout,
        http_settings.max_redirects,
        http_settings.rps,
        check_settings.concurrency,
    )
    return settings
