"""Session configuration loaded once per suite run."""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, SecretStr, ValidationError, field_validator

from e2e_harness.errors import ConfigError
from e2e_harness.models.base import Model

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("e2e-harness.yaml")
DEFAULT_DISCOVERY_URL = "http://localhost:3000/browser/start_browser"

# Environment variables that take precedence over file values
ENV_OVERRIDES: Mapping[str, str] = {
    "TEST_BASE_URL": "base.url",
    "TEST_API_URL": "api.url",
}

BROWSER_ALIASES: Mapping[str, str] = {
    "chrome": "chromium",
    "msedge": "edge",
}


class ViewportSize(Model):
    """Browser viewport dimensions in CSS pixels."""

    width: int
    height: int


class SessionConfig(Model):
    """Immutable browser session configuration.

    Field aliases are the dotted keys used in the configuration file.
    """

    browser: str = "chromium"
    headless: bool = False
    implicit_wait: int = Field(default=5, gt=0, alias="implicit.wait")
    page_load_timeout: int = Field(default=15, gt=0, alias="page.load.timeout")
    remote_attach: bool = Field(default=False, alias="devin.browser.enabled")
    discovery_url: str = Field(
        default=DEFAULT_DISCOVERY_URL, alias="devin.browser.service.url"
    )
    discovery_token: SecretStr | None = Field(
        default=None, alias="devin.browser.service.token"
    )
    base_url: str = Field(default="http://localhost:3000", alias="base.url")
    api_url: str = Field(default="http://localhost:8080", alias="api.url")
    viewport_width: int = Field(default=1920, gt=0, alias="viewport.width")
    viewport_height: int = Field(default=1080, gt=0, alias="viewport.height")
    discovery_timeout: float = Field(default=10.0, gt=0, alias="discovery.timeout")
    launch_timeout: float = Field(default=30.0, gt=0, alias="launch.timeout")
    release_timeout: float = Field(default=5.0, gt=0, alias="release.timeout")
    artifact_dir: Path = Field(
        default=Path("build/reports/e2e/screenshots"), alias="artifact.dir"
    )
    report_path: Path = Field(
        default=Path("build/reports/e2e/report.json"), alias="report.path"
    )

    @field_validator("browser", mode="before")
    @classmethod
    def normalize_browser(cls, value: Any) -> Any:
        """Lower-case the browser name and resolve common aliases."""
        if isinstance(value, str):
            name = value.strip().lower()
            return BROWSER_ALIASES.get(name, name)
        return value

    @property
    def viewport(self) -> ViewportSize:
        """Configured viewport for locally launched browsers."""
        return ViewportSize(width=self.viewport_width, height=self.viewport_height)


def load_session_config(
    source: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> SessionConfig:
    """Load session configuration from a flat YAML file.

    A missing file is equivalent to an empty one: every key falls back to its
    default.

    Args:
        source: Path to the configuration file (defaults to e2e-harness.yaml)
        environ: Environment used for overrides (defaults to os.environ)
        overrides: Values taking precedence over both file and environment

    Returns:
        The resolved configuration

    Raises:
        ConfigError: If a value cannot be parsed into its expected type

    """
    path = source if source is not None else DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ

    values = dict(read_config_file(path))

    for env_key, config_key in ENV_OVERRIDES.items():
        if env_value := environ.get(env_key):
            log.debug("Overriding %s from %s", config_key, env_key)
            values[config_key] = env_value

    values.update(overrides or {})

    try:
        return SessionConfig.model_validate(values)
    except ValidationError as e:
        error = e.errors()[0]
        key = ".".join(str(part) for part in error["loc"]) or "<root>"
        raise ConfigError(key, error["msg"]) from e


def read_config_file(path: Path) -> Mapping[str, Any]:
    """Read the raw key/value mapping from a configuration file."""
    if not path.exists():
        log.info("Config file %s not found, using defaults", path)
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError("<file>", f"{path} is not valid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("<file>", f"{path} must contain a mapping of keys")

    return {str(key): value for key, value in data.items()}
