"""
Docker lifecycle controller.

Locates pooled containers by their reuse label and tears them down.
The pool coordinator only ever destroys containers through this module;
creating them is the job of mtsftp.containers.
"""

import logging
from typing import Optional

import docker
from docker.errors import APIError, DockerException, NotFound

logger = logging.getLogger(__name__)


class ContainerError(Exception):
    """Raised when the Docker daemon rejects a lifecycle operation."""
    pass


class DockerLifecycleController:
    """
    Find, stop and kill containers through the Docker SDK.

    Args:
        client: Docker client; defaults to ``docker.from_env()``
        stop_timeout: Seconds granted to a container to stop gracefully
    """

    def __init__(self, client: Optional[docker.DockerClient] = None, stop_timeout: int = 10):
        self._client = client
        self.stop_timeout = stop_timeout

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise ContainerError(f"Docker daemon unavailable: {e}") from e
        return self._client

    def find_by_label(self, key: str, value: str) -> Optional[str]:
        """
        Return the id of the first container (running or not) labelled ``key=value``.
        """
        try:
            containers = self.client.containers.list(
                all=True,
                filters={"label": f"{key}={value}"},
            )
        except APIError as e:
            raise ContainerError(f"Failed to list containers for {key}={value}: {e}") from e

        for container in containers:
            if container.labels.get(key) == value:
                return container.id
        return None

    def stop(self, container_id: str) -> None:
        try:
            self.client.containers.get(container_id).stop(timeout=self.stop_timeout)
            logger.info(f"Stopped container {container_id[:12]}")
        except NotFound:
            logger.debug(f"Container {container_id[:12]} already gone")
        except APIError as e:
            raise ContainerError(f"Failed to stop container {container_id}: {e}") from e

    def kill(self, container_id: str) -> None:
        try:
            self.client.containers.get(container_id).kill()
            logger.info(f"Killed container {container_id[:12]}")
        except NotFound:
            logger.debug(f"Container {container_id[:12]} already gone")
        except APIError as e:
            # 409: the container is not running any more
            if e.status_code == 409:
                logger.debug(f"Container {container_id[:12]} not running, nothing to kill")
                return
            raise ContainerError(f"Failed to kill container {container_id}: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
