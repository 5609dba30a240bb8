"""
Configuration for the research agent.

Environment variables (all optional):
    OLLAMA_MODEL: Model name served by Ollama (default: llama3.2)
    OLLAMA_HOST: Ollama server URL (alias: OLLAMA_API_BASE_URL)
    TEMPERATURE: Sampling temperature, 0.0 to 1.0
    MAX_SEARCH_RESULTS: Results returned per web search
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL
        (alias: RUST_LOG, whose global level such as "trace" or "info,hyper=warn"
        is mapped onto these; unreadable values fall back to the default)
    SEARCH_TIMEOUT: Seconds to wait for the search endpoint
"""

import os
from dataclasses import dataclass
from typing import Mapping

from dotenv import find_dotenv, load_dotenv

DEFAULT_MODEL = "llama3.2"
DEFAULT_HOST = "http://localhost:11434"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_SEARCH_RESULTS = 5
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SEARCH_TIMEOUT = 10.0

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Field name -> environment variables, first match wins.
ENV_VARS: dict[str, tuple[str, ...]] = {
    "model": ("OLLAMA_MODEL",),
    "host": ("OLLAMA_HOST", "OLLAMA_API_BASE_URL"),
    "temperature": ("TEMPERATURE",),
    "max_search_results": ("MAX_SEARCH_RESULTS",),
    "log_level": ("LOG_LEVEL", "RUST_LOG"),
    "search_timeout": ("SEARCH_TIMEOUT",),
}

# RUST_LOG level names; directives with a target ("hyper=warn") are ignored.
RUST_LOG_LEVELS = {
    "trace": "DEBUG",
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
    "critical": "CRITICAL",
    "off": "CRITICAL",
}


class ConfigError(ValueError):
    """Invalid configuration value. `field` names the offending setting."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


@dataclass(frozen=True)
class Config:
    model: str = DEFAULT_MODEL
    host: str = DEFAULT_HOST
    temperature: float = DEFAULT_TEMPERATURE
    max_search_results: int = DEFAULT_MAX_SEARCH_RESULTS
    log_level: str = DEFAULT_LOG_LEVEL
    search_timeout: float = DEFAULT_SEARCH_TIMEOUT

    def __post_init__(self):
        if not self.model.strip():
            raise ConfigError("model", "must not be empty")

        if not self.host.startswith(("http://", "https://")):
            raise ConfigError("host", f"must be an http(s) URL, got {self.host!r}")

        if not 0.0 <= self.temperature <= 1.0:
            raise ConfigError(
                "temperature", f"must be between 0.0 and 1.0, got {self.temperature}"
            )

        if self.max_search_results <= 0:
            raise ConfigError(
                "max_search_results", f"must be at least 1, got {self.max_search_results}"
            )

        if self.log_level not in LOG_LEVELS:
            raise ConfigError(
                "log_level",
                f"must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}",
            )

        if self.search_timeout <= 0:
            raise ConfigError(
                "search_timeout", f"must be positive, got {self.search_timeout}"
            )

    @property
    def openai_base_url(self) -> str:
        """Ollama's OpenAI-compatible endpoint."""
        return f"{self.host.rstrip('/')}/v1"


def _from_env(environ: Mapping[str, str], field: str) -> str | None:
    for name in ENV_VARS[field]:
        value = environ.get(name, "").strip()
        if not value:
            continue
        if name == "RUST_LOG":
            return _rust_log_level(value)
        return value
    return None


def _rust_log_level(value: str) -> str | None:
    """Global level of a directive list like "info,hyper=warn". None if it has none."""
    for directive in value.split(","):
        level = RUST_LOG_LEVELS.get(directive.strip().lower())
        if level:
            return level
    return None


def _parse(field: str, raw, kind):
    if not isinstance(raw, str):
        return raw
    try:
        return kind(raw)
    except ValueError:
        raise ConfigError(field, f"expected {kind.__name__}, got {raw!r}") from None


def load_config(
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """
    Build the configuration. Precedence: overrides > environment > defaults.

    Args:
        overrides: Values from CLI flags; None entries are ignored
        environ: Environment mapping (defaults to os.environ after loading .env)

    Raises:
        ConfigError: If any value fails to parse or validate
    """
    if environ is None:
        load_dotenv(find_dotenv(usecwd=True))
        environ = os.environ

    values: dict[str, object] = {}
    for field in ENV_VARS:
        raw = _from_env(environ, field)
        if raw is not None:
            values[field] = raw

    for field, value in (overrides or {}).items():
        if field not in ENV_VARS:
            raise ConfigError(field, "unknown setting")
        if value is not None:
            values[field] = value

    if "temperature" in values:
        values["temperature"] = _parse("temperature", values["temperature"], float)
    if "max_search_results" in values:
        values["max_search_results"] = _parse(
            "max_search_results", values["max_search_results"], int
        )
    if "search_timeout" in values:
        values["search_timeout"] = _parse("search_timeout", values["search_timeout"], float)
    if "log_level" in values:
        values["log_level"] = str(values["log_level"]).upper()

    return Config(**values)
