"""
Start or reuse Docker containers keyed by a pooled instance id.

A container started here carries the reuse label ``reuse.UUID=<instance id>``.
Asking again for the same instance id returns the container that is
already there instead of creating a second one, which is what lets
concurrent test processes share containers handed out by the pool
coordinator.
"""

import io
import logging
import os
import tarfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import docker
from docker.errors import APIError, ImageNotFound
from docker.models.containers import Container

from mtsftp.config.models import DEFAULT_REUSE_LABEL, DockerConfig
from mtsftp.pool.lifecycle import ContainerError

logger = logging.getLogger(__name__)

TYPE_LABEL = "mtsftp.type"


@dataclass
class ContainerSpec:
    """
    What to run for a resource type.

    Attributes:
        resource_type: Pool resource type (e.g. "sftp")
        image: Docker image reference
        exposed_ports: Container ports published on random host ports
        env: Environment variables
        command: Command override
        files: Local file path -> absolute path inside the container,
            copied before the container starts
    """
    resource_type: str
    image: str
    exposed_ports: Tuple[int, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)
    command: Optional[List[str]] = None
    files: Dict[str, str] = field(default_factory=dict)


@dataclass
class RunningContainer:
    """A started container bound to a pooled instance id."""
    container: Container
    instance_id: str
    host: str = "localhost"

    @property
    def id(self) -> str:
        return self.container.id

    def mapped_port(self, port: int) -> int:
        """
        Host port published for container ``port``.

        Raises:
            ContainerError: If the port is not published
        """
        self.container.reload()
        bindings = (self.container.ports or {}).get(f"{port}/tcp")
        if not bindings:
            raise ContainerError(f"Port {port} is not published by container {self.id[:12]}")
        return int(bindings[0]["HostPort"])


def docker_host() -> str:
    """Hostname under which published ports are reachable."""
    docker_url = os.getenv("DOCKER_HOST", "")
    if docker_url.startswith("tcp://"):
        return urlparse(docker_url).hostname or "localhost"
    return "localhost"


def _parse_created(created: str) -> datetime:
    # Docker reports nanoseconds, e.g. 2024-03-01T10:22:33.123456789Z
    return datetime.strptime(created[:19], "%Y-%m-%dT%H:%M:%S").replace(tzinfo=timezone.utc)


def ensure_image(client: docker.DockerClient, image: str, max_age_days: int = 30) -> None:
    """
    Pull ``image`` when it is missing locally or older than ``max_age_days``.
    """
    try:
        local_image = client.images.get(image)
        created = _parse_created(local_image.attrs["Created"])
        age = datetime.now(timezone.utc) - created
        if age <= timedelta(days=max_age_days):
            logger.debug(f"Using local image {image} ({age.days} days old)")
            return
        logger.info(f"Local image {image} is {age.days} days old, pulling")
    except ImageNotFound:
        logger.info(f"Image {image} not found locally, pulling")

    try:
        client.images.pull(image)
    except APIError as e:
        raise ContainerError(f"Failed to pull image {image}: {e}") from e


def build_archive(files: Dict[str, str]) -> bytes:
    """
    Pack local files into a tar archive rooted at ``/``.

    Intermediate directories are created when the archive is extracted.
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        for local_path, container_path in files.items():
            with open(os.path.expanduser(local_path), "rb") as f:
                content = f.read()
            info = tarfile.TarInfo(name=container_path.lstrip("/"))
            info.size = len(content)
            info.mode = 0o600
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def find_reusable(
    client: docker.DockerClient,
    instance_id: str,
    reuse_label: str = DEFAULT_REUSE_LABEL,
) -> Optional[Container]:
    """
    Return the container labelled with ``instance_id``, running or not.

    Raises:
        ContainerError: If the Docker daemon cannot be queried
    """
    try:
        containers = client.containers.list(
            all=True,
            filters={"label": f"{reuse_label}={instance_id}"},
        )
    except APIError as e:
        raise ContainerError(f"Failed to look up container for {instance_id}: {e}") from e
    return containers[0] if containers else None


def follow_output(container: Container, container_logger: logging.Logger) -> threading.Thread:
    """Stream container output into ``container_logger`` from a daemon thread."""

    def _pump():
        for line in container.logs(stream=True, follow=True):
            container_logger.info(line.decode("utf-8", errors="replace").rstrip())

    thread = threading.Thread(target=_pump, name=f"logs-{container.short_id}", daemon=True)
    thread.start()
    return thread


def _create_and_start(
    client: docker.DockerClient,
    spec: ContainerSpec,
    instance_id: str,
    reuse_label: str,
    tmp_folder_name: str,
    env: Dict[str, str],
) -> Container:
    container = client.containers.create(
        spec.image,
        command=spec.command,
        environment=env,
        labels={reuse_label: instance_id, TYPE_LABEL: spec.resource_type},
        ports={f"{port}/tcp": None for port in spec.exposed_ports},
        tmpfs={f"/tmp/{tmp_folder_name}": "rw"},
        detach=True,
    )
    try:
        if spec.files:
            container.put_archive("/", build_archive(spec.files))
        container.start()
    except APIError:
        container.remove(force=True)
        raise
    return container


def start_or_reuse_unique_instance(
    client: docker.DockerClient,
    spec: ContainerSpec,
    instance_id: str,
    reuse_label: str = DEFAULT_REUSE_LABEL,
    tmp_folder_name: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    docker_config: Optional[DockerConfig] = None,
    container_logger: Optional[logging.Logger] = None,
) -> RunningContainer:
    """
    Return the container labelled with ``instance_id``, creating it if needed.

    Args:
        client: Docker client
        spec: Image, ports, env and files for the resource type
        instance_id: Pooled instance id, used as the reuse label value
        reuse_label: Label key carrying the instance id
        tmp_folder_name: Name of the tmpfs mount under /tmp (default: instance id)
        env: Extra environment variables on top of ``spec.env``
        docker_config: Image age and startup attempt settings
        container_logger: If set, container output is streamed to it

    Raises:
        ContainerError: If the container cannot be started
    """
    docker_config = docker_config or DockerConfig()

    existing = find_reusable(client, instance_id, reuse_label)
    if existing is not None:
        try:
            if existing.status != "running":
                logger.info(f"Restarting stopped container {existing.short_id} for {instance_id}")
                existing.start()
            else:
                logger.info(f"Reusing container {existing.short_id} for {instance_id}")
            existing.reload()
        except APIError as e:
            raise ContainerError(
                f"Could not restart container {existing.short_id} for {instance_id}: {e}"
            ) from e
        container = existing
    else:
        ensure_image(client, spec.image, docker_config.image_max_age_days)
        merged_env = {**spec.env, **(env or {})}

        last_error: Optional[Exception] = None
        container = None
        for attempt in range(1, docker_config.startup_attempts + 1):
            try:
                container = _create_and_start(
                    client, spec, instance_id, reuse_label,
                    tmp_folder_name or instance_id, merged_env,
                )
                break
            except APIError as e:
                last_error = e
                logger.warning(
                    f"Starting {spec.image} failed "
                    f"(attempt {attempt}/{docker_config.startup_attempts}): {e}"
                )

        if container is None:
            raise ContainerError(
                f"Could not start {spec.image} for {instance_id}: {last_error}"
            ) from last_error

        logger.info(f"Started container {container.short_id} ({spec.image}) for {instance_id}")

    if container_logger is not None:
        follow_output(container, container_logger)

    return RunningContainer(container=container, instance_id=instance_id, host=docker_host())
