"""Fixtures for module tests using WireMock testcontainers."""

from collections.abc import Generator
from pathlib import Path

import docker
import pytest
from docker.errors import DockerException
from testcontainers.core import testcontainers_config
from wiremock.client import Mappings
from wiremock.constants import Config
from wiremock.testing.testcontainer import WireMockContainer


@pytest.fixture(scope="session", autouse=True)
def _disable_ryuk() -> None:
    """Disable the extra cleanup instance, we use contexts to clean containers."""
    testcontainers_config.ryuk_disabled = True


@pytest.fixture(scope="session")
def _require_docker() -> None:
    try:
        docker.from_env().ping()
    except DockerException as e:
        pytest.skip(f"Docker is not available: {e}")


@pytest.fixture(scope="session")
def wiremock_server(_require_docker: None) -> Generator[WireMockContainer, None, None]:
    """Start WireMock container using wiremock's testcontainer support."""
    with WireMockContainer(secure=False) as wm:
        Config.base_url = wm.get_url("__admin")
        yield wm
        print(wm.get_logs())


@pytest.fixture
def discovery_url(wiremock_server: WireMockContainer) -> str:
    """URL of the stubbed discovery endpoint, with mappings reset."""
    Mappings.delete_all_mappings()
    return wiremock_server.get_url("browser/start_browser")


@pytest.fixture
def config_file(tmp_path: Path, discovery_url: str) -> Path:
    """Write a remote-attach configuration pointing at WireMock."""
    path = tmp_path / "e2e-harness.yaml"
    path.write_text(
        f"devin.browser.enabled: true\n"
        f"devin.browser.service.url: {discovery_url}\n"
        f"devin.browser.service.token: module-token\n"
        f"discovery.timeout: 2\n"
    )
    return path
