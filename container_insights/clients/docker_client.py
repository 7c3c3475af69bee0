"""
Container runtime inventory probe backed by the Docker SDK.
"""

import logging
import threading
from typing import Optional

import docker
import requests
from docker.errors import DockerException

from ..utils.errors import RuntimeUnavailable

logger = logging.getLogger(__name__)


class InventoryProbe:
    """
    Counts the containers the Docker daemon reports.

    The SDK client is created lazily on first use and kept for the life of
    the process; if creation fails the next ``count()`` tries again.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: int = 60,
        all_containers: bool = True,
        client: Optional[docker.DockerClient] = None
    ):
        """
        Args:
            base_url: Docker daemon URL, None to read DOCKER_HOST / the local socket
            timeout: API call timeout in seconds
            all_containers: Count containers in every state, not only running ones
            client: Pre-built SDK client, mainly for tests
        """
        self.base_url = base_url
        self.timeout = timeout
        self.all_containers = all_containers
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def target(self) -> str:
        return self.base_url or "docker-from-env"

    def _get_client(self) -> docker.DockerClient:
        with self._client_lock:
            if self._client is None:
                if self.base_url:
                    self._client = docker.DockerClient(base_url=self.base_url, timeout=self.timeout)
                else:
                    self._client = docker.from_env(timeout=self.timeout)
                logger.debug(f"Created Docker client for {self.target}")
            return self._client

    def count(self) -> int:
        """
        Return the number of containers currently known to the runtime.

        Raises:
            RuntimeUnavailable: If the daemon cannot be reached or the call fails
        """
        try:
            client = self._get_client()
            containers = client.containers.list(all=self.all_containers, sparse=True)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeUnavailable(
                f"Cannot list containers: {e}",
                operation="list_containers",
                target=self.target
            ) from e

        return len(containers)

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None
