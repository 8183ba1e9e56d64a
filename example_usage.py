"""
Example usage of the mtsftp container pool and SFTP client.

This script borrows an SFTP container from the shared pool, uploads and
lists a file, gives the container back, and reaps abandoned instances.

Prerequisites:
1. A running Docker daemon
2. Optionally a settings file referenced by MTSFTP_CONFIG

Usage:
    python example_usage.py
"""

import logging
import tempfile

import docker

from mtsftp.config import load_settings
from mtsftp.containers import (
    SFTP_TYPE,
    generate_ssh_material,
    pool_coordinator_for,
    sftp_container_spec,
    sftp_strategy,
    start_or_reuse_unique_instance,
    start_shared_redis,
    write_known_hosts,
)
from mtsftp.sftp import SFTPFileConnectorService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    settings = load_settings()
    client = docker.from_env()

    redis_container = start_shared_redis(client, settings)
    coordinator = pool_coordinator_for(redis_container, client, settings)
    material = generate_ssh_material(tempfile.mkdtemp(prefix="mtsftp-ssh"))

    instance_id = coordinator.acquire(SFTP_TYPE)
    logger.info(f"Borrowed sftp instance {instance_id}")

    try:
        sftp_container = start_or_reuse_unique_instance(
            client,
            sftp_container_spec(material),
            instance_id=instance_id,
            reuse_label=settings.pool.reuse_label,
            docker_config=settings.docker,
        )
        service = SFTPFileConnectorService(write_known_hosts(material, sftp_container))

        with service.connect(sftp_strategy(material, sftp_container)) as connection:
            with tempfile.NamedTemporaryFile(suffix=".tmp", delete=False) as f:
                f.write(b"hello")
            connection.upload_file(f.name, "/share/hello.tmp")
            logger.info(f"Remote files: {sorted(connection.list_remote_files('/share'))}")

    finally:
        coordinator.release(SFTP_TYPE, instance_id)

    result = coordinator.release_all(SFTP_TYPE)
    logger.info(f"Reap: {len(result.reclaimed)} reclaimed, {len(result.destroyed)} destroyed")

    coordinator.close()
    client.close()


if __name__ == "__main__":
    main()
