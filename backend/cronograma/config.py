"""Application configuration loader."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


CONFIG_ENV_VAR = "CRONOGRAMA_CONFIG_FILE"
CONFIG_PATH = Path(__file__).resolve().parent / "config.toml"

DEPLOYMENT_PROFILES = {"local", "serverless"}
BACKOFF_STRATEGIES = {"linear", "exponential"}
DEFAULT_BLOCKED_RESOURCE_TYPES = ["image", "stylesheet", "font", "media"]
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Config:
    """Application configuration loaded from TOML files.

    The initializer normalizes nested dictionaries and allows environment
    variables to override deployment-specific values such as the port, the
    portal URL and the browser launch profile.
    """

    def __init__(self, data: Dict[str, Any]) -> None:
        """Initialise configuration values from parsed TOML data.

        Args:
            data: Nested dictionary representation of the TOML file.
        """
        server = data.get("server", {})
        deployment = data.get("deployment", {})
        portal = data.get("portal", {})
        defaults = data.get("defaults", {})
        browser = data.get("browser", {})
        retry = data.get("retry", {})
        cache = data.get("cache", {})

        self.HOST: str = os.getenv("HOST", server.get("host", "0.0.0.0"))
        self.PORT: int = int(os.getenv("PORT", server.get("port", 3000)))
        self.LOG_LEVEL: str = str(os.getenv("LOG_LEVEL", server.get("log_level", "INFO"))).upper()

        profile_default = "serverless" if os.getenv("RENDER") else "local"
        profile_candidate = (
            str(os.getenv("DEPLOYMENT_PROFILE", deployment.get("profile") or profile_default)).strip().lower()
        )
        if profile_candidate not in DEPLOYMENT_PROFILES:
            profile_candidate = profile_default
        self.DEPLOYMENT_PROFILE: str = profile_candidate

        self.PORTAL_URL: str = os.getenv("PORTAL_URL", portal.get("url", ""))
        self.PORTAL_PROGRAM_SELECTOR: str = portal.get("program_selector", '[name="Programa"]')
        self.PORTAL_CAMPUS_SELECTOR: str = portal.get("campus_selector", '[name="Sede"]')
        self.PORTAL_RESOURCE_SELECTOR: str = portal.get("resource_selector", '[name="recurso"]')
        self.PORTAL_SEARCH_SELECTOR: str = portal.get("search_selector", "#search")
        self.PORTAL_RESPONSE_MARKER: str = portal.get("response_marker", "buscarCronograma")
        self.PORTAL_NAVIGATION_TIMEOUT_MS: int = int(portal.get("navigation_timeout_ms", 15000))
        self.PORTAL_SELECTOR_TIMEOUT_MS: int = int(portal.get("selector_timeout_ms", 10000))
        self.PORTAL_RESPONSE_TIMEOUT_MS: int = int(portal.get("response_timeout_ms", 15000))

        self.DEFAULT_PROGRAMA: str = str(defaults.get("programa", "82"))
        self.DEFAULT_SEDE: str = str(defaults.get("sede", "10"))
        self.DEFAULT_RECURSO: str = str(defaults.get("recurso", "2"))

        self.BROWSER_REUSE_SESSION: bool = self._parse_bool(
            os.getenv("BROWSER_REUSE_SESSION", browser.get("reuse_session", True))
        )
        self.BROWSER_VIEWPORT_WIDTH: int = int(browser.get("viewport_width", 1024))
        self.BROWSER_VIEWPORT_HEIGHT: int = int(browser.get("viewport_height", 768))
        self.BROWSER_USER_AGENT: str = browser.get("user_agent", DEFAULT_USER_AGENT)
        self.BROWSER_BLOCKED_RESOURCE_TYPES: List[str] = [
            str(item).strip().lower()
            for item in browser.get("blocked_resource_types", DEFAULT_BLOCKED_RESOURCE_TYPES)
            if str(item).strip()
        ]
        self.BROWSER_DEFAULT_TIMEOUT_MS: int = int(browser.get("default_timeout_ms", 15000))
        self.BROWSER_LAUNCH_TIMEOUT_MS: int = int(browser.get("launch_timeout_ms", 30000))
        self.BROWSER_EXECUTABLE_PATH: Optional[str] = (
            os.getenv("CHROMIUM_EXECUTABLE_PATH", self._none_to_empty(browser.get("executable_path"))) or None
        )
        self.PLAYWRIGHT_BROWSERS_PATH: str = browser.get("browsers_path", "/ms-playwright")
        self.BROWSER_AUTO_INSTALL: bool = self._parse_bool(browser.get("auto_install", True))

        self.MAX_RETRIES: int = max(0, int(os.getenv("MAX_RETRIES", retry.get("max_retries", 1))))
        self.BACKOFF_BASE_SECONDS: float = float(retry.get("backoff_base_seconds", 1.0))
        strategy_candidate = str(retry.get("backoff_strategy", "linear")).strip().lower() or "linear"
        if strategy_candidate not in BACKOFF_STRATEGIES:
            strategy_candidate = "linear"
        self.BACKOFF_STRATEGY: str = strategy_candidate

        self.CACHE_TTL_SECONDS: float = float(os.getenv("CACHE_TTL_SECONDS", cache.get("ttl_seconds", 300)))

    @staticmethod
    def _none_to_empty(value: Any) -> str:
        """Convert `None` to an empty string.

        Args:
            value: The original value that may be `None`.

        Returns:
            str: An empty string when `value` is `None`; otherwise the string
            representation of `value`.
        """
        if value is None:
            return ""
        return str(value)

    @staticmethod
    def _parse_bool(value: Any) -> bool:
        """Parse a boolean-like value.

        Args:
            value: Any truthy/falsy representation.

        Returns:
            bool: Parsed boolean, defaulting to False only for explicit false-like values.
        """
        if isinstance(value, bool):
            return value
        if value is None:
            return False
        str_value = str(value).strip().lower()
        return str_value not in {"0", "false", "no", "off"}


def load_config(path: Path | str | None = None) -> Config:
    """Load the application configuration from a TOML file.

    Args:
        path: Optional path to the configuration file. When omitted, the
            function checks the `CRONOGRAMA_CONFIG_FILE` environment variable
            and finally falls back to `config.toml`.

    Returns:
        Config: A configuration object populated with the parsed values.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        tomllib.TOMLDecodeError: If the TOML content is malformed.
    """
    config_path = _resolve_config_path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    return Config(data)


def _resolve_config_path(path: Path | str | None) -> Path:
    """Resolve the path to the configuration file.

    Args:
        path: Explicit path provided by the caller.

    Returns:
        Path: The resolved configuration path, prioritizing the argument, then
        the `CRONOGRAMA_CONFIG_FILE` environment variable, and lastly the
        default location.
    """
    if path:
        return Path(path)

    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    return CONFIG_PATH


config = load_config()
