"""
Cloud instance metadata client: resolves the host's public IP and location key.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..models.core import HostMetadata
from ..utils.errors import EmptyResponseFailure, NetworkFailure

logger = logging.getLogger(__name__)

PUBLIC_IP_PREFIX = "pip:"
LOCATION_KEY_PREFIX = "locationkey:"
METADATA_HEADERS = {"Metadata": "true"}


def parse_metadata(body: str) -> HostMetadata:
    """
    Parse a ``;``-delimited tag string into host metadata.

    The first token starting with ``pip:`` gives the public IP and the first
    token starting with ``locationkey:`` gives the location key, in any
    order. Missing tokens leave the field empty; that is not an error.

    Raises:
        EmptyResponseFailure: If the body is empty; a whitespace-only body
            parses to empty fields instead
    """
    if not body:
        raise EmptyResponseFailure("Metadata response body is empty", operation="parse_metadata")

    public_ip: Optional[str] = None
    location_key: Optional[str] = None

    for token in body.strip().split(";"):
        token = token.strip()
        if public_ip is None and token.startswith(PUBLIC_IP_PREFIX):
            public_ip = token[len(PUBLIC_IP_PREFIX):]
        elif location_key is None and token.startswith(LOCATION_KEY_PREFIX):
            location_key = token[len(LOCATION_KEY_PREFIX):]

    return HostMetadata(location_key=location_key or "", public_ip=public_ip or "")


class HostLocator:
    """
    Resolves host metadata with a single GET against the metadata endpoint.

    No retries: resolution happens once at startup and the caller decides
    whether a failure is fatal.
    """

    def __init__(self, endpoint_url: str, timeout: float = 0):
        """
        Args:
            endpoint_url: Instance metadata URL
            timeout: Total request timeout in seconds, 0 for the transport default
        """
        self.endpoint_url = endpoint_url
        self.timeout = timeout

    async def resolve(self) -> HostMetadata:
        """
        Fetch and parse host metadata.

        Raises:
            NetworkFailure: If the request cannot be sent, fails or times out
            EmptyResponseFailure: If the endpoint returns an empty body
        """
        body = await self._fetch()
        metadata = parse_metadata(body)

        logger.info(
            f"Resolved host metadata from {self.endpoint_url}: "
            f"locationKey={metadata.location_key!r} publicIP={metadata.public_ip!r}"
        )
        return metadata

    async def _fetch(self) -> str:
        session_kwargs = {}
        if self.timeout:
            session_kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(**session_kwargs) as session:
                async with session.get(self.endpoint_url, headers=METADATA_HEADERS) as response:
                    if response.status >= 400:
                        logger.warning(
                            f"Metadata endpoint {self.endpoint_url} answered HTTP {response.status}"
                        )
                    return await response.text()
        except asyncio.TimeoutError as e:
            raise NetworkFailure(
                f"Metadata request timed out after {self.timeout}s",
                operation="resolve_metadata",
                target=self.endpoint_url
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkFailure(
                f"Metadata request failed: {e}",
                operation="resolve_metadata",
                target=self.endpoint_url
            ) from e


async def resolve_host_metadata(endpoint_url: str, timeout: float = 0) -> HostMetadata:
    """Resolve host metadata in one call."""
    return await HostLocator(endpoint_url, timeout).resolve()
