"""Client for the remote browser discovery service."""

import json
import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Annotated, Any

import aiohttp
from pydantic import ConfigDict, Field, StrictInt, ValidationError

from e2e_harness.config import SessionConfig
from e2e_harness.errors import DiscoveryError
from e2e_harness.models.base import Model

log = logging.getLogger(__name__)

DISCOVERY_PAYLOAD: Mapping[str, Any] = {"frpConfig": None}
ENDPOINT_HOST = "127.0.0.1"


class DiscoveryResponse(Model):
    """Response body of the browser discovery service."""

    model_config = ConfigDict(frozen=True, extra="allow")

    port: Annotated[StrictInt, Field(gt=0, le=65535)]

    @property
    def metadata(self) -> Mapping[str, Any]:
        """Any fields returned alongside the port."""
        return dict(self.model_extra or {})


@dataclass(frozen=True, kw_only=True)
class Endpoint:
    """Remote debugging endpoint of an externally managed browser."""

    host: str = ENDPOINT_HOST
    port: int

    @property
    def cdp_url(self) -> str:
        """URL for attaching over the Chrome DevTools protocol."""
        return f"http://{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, kw_only=True)
class RemoteBrowserClient:
    """Asks the discovery service for a debuggable browser instance.

    Every call may start a fresh browser on the service side, so responses are
    never cached and failed calls are never retried here.
    """

    url: str
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: SessionConfig
    ) -> AsyncGenerator["RemoteBrowserClient", None]:
        """Create client with managed session lifecycle."""
        headers = {"Content-Type": "application/json"}
        if config.discovery_token is not None:
            headers["Authorization"] = (
                f"Bearer {config.discovery_token.get_secret_value()}"
            )
        async with aiohttp.ClientSession(headers=headers) as session:
            yield cls(url=config.discovery_url, session=session)

    async def discover(self, timeout: float) -> Endpoint:
        """Request a browser instance and return its debugging endpoint.

        Args:
            timeout: Maximum time in seconds for the whole request

        Returns:
            Endpoint to attach to

        Raises:
            DiscoveryError: On timeout, network failure, non-200 status or an
                unexpected response body

        """
        log.info("Requesting browser from discovery service: url=%s", self.url)

        try:
            async with self.session.post(
                self.url,
                json=DISCOVERY_PAYLOAD,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                text = await response.text()
                if response.status != 200:
                    raise DiscoveryError(
                        "status",
                        f"unexpected response {response.status}: {text}",
                        status=response.status,
                    )
        except TimeoutError as e:
            raise DiscoveryError(
                "timeout", f"no response from {self.url} within {timeout} seconds"
            ) from e
        except aiohttp.ClientError as e:
            raise DiscoveryError("network", f"{self.url}: {e}") from e

        endpoint = Endpoint(port=parse_discovery_response(text).port)
        log.info("Discovery service returned endpoint %s", endpoint)
        return endpoint


def parse_discovery_response(text: str) -> DiscoveryResponse:
    """Decode the discovery response body.

    A body that is not JSON is reported separately from a JSON body that
    lacks a usable port.
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise DiscoveryError("decode", f"response is not JSON: {text!r}") from e

    if not isinstance(data, dict):
        raise DiscoveryError("missing-port", f"expected a JSON object: {text!r}")

    try:
        return DiscoveryResponse.model_validate(data)
    except ValidationError as e:
        raise DiscoveryError("missing-port", f"no valid port in {text!r}") from e
