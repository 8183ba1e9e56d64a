"""
Pydantic models for mtsftp settings.

These models define the structure of the YAML settings file shared by
the SFTP client and the container pool. Every section has sensible
defaults so a missing file still yields a usable configuration for a
local Redis and Docker daemon.
"""

from datetime import timedelta
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_REUSE_LABEL = "reuse.UUID"


class RedisConfig(BaseModel):
    """
    Lease store (Redis) connection configuration.

    Attributes:
        host: Redis hostname
        port: Redis port (default: 6379)
        db: Database index (default: 0)
        password: Optional Redis password
        socket_timeout: Seconds before a blocking call gives up
    """
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    socket_timeout: Optional[float] = 5.0


class PoolConfig(BaseModel):
    """
    Lifecycle policy for pooled container instances.

    Attributes:
        lock_ttl_seconds: How long an instance may stay locked before it is
            considered abandoned and reclaimed (default: 5 minutes)
        creation_ttl_seconds: Maximum total age of an abandoned instance
            before it is destroyed instead of reused (default: 30 minutes)
        reuse_label: Docker label key carrying the instance id
        atomic_release: Use a server-side script for release when the
            store supports it
    """
    lock_ttl_seconds: int = Field(default=300, gt=0)
    creation_ttl_seconds: int = Field(default=1800, gt=0)
    reuse_label: str = DEFAULT_REUSE_LABEL
    atomic_release: bool = True

    @property
    def lock_ttl(self) -> timedelta:
        return timedelta(seconds=self.lock_ttl_seconds)

    @property
    def creation_ttl(self) -> timedelta:
        return timedelta(seconds=self.creation_ttl_seconds)


class DockerConfig(BaseModel):
    """
    Settings used when starting or reusing test containers.

    Attributes:
        image_max_age_days: Pull the image again once the local copy is older
        startup_attempts: Number of tries before giving up on a container
        stop_timeout: Seconds granted to a container to stop gracefully
    """
    image_max_age_days: int = Field(default=30, ge=0)
    startup_attempts: int = Field(default=1, ge=1)
    stop_timeout: int = Field(default=10, ge=0)


class SFTPConfig(BaseModel):
    """
    SFTP connection configuration.

    Attributes:
        host: SFTP server hostname
        port: SFTP server port (default: 22)
        username: SFTP username
        password: SFTP password (use password OR key_path, not both)
        key_path: Path to SSH private key file
        known_hosts_path: known_hosts file used to verify the server
        strict_host_checking: Reject hosts missing from known_hosts
    """
    host: str
    port: int = 22
    username: str
    password: Optional[str] = None
    key_path: Optional[str] = None
    known_hosts_path: Optional[str] = None
    strict_host_checking: bool = True

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        if not 0 < v < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {v}")
        return v

    @model_validator(mode="after")
    def check_credentials(self):
        """Exactly one authentication method must be configured."""
        if bool(self.password) == bool(self.key_path):
            raise ValueError("Set either 'password' or 'key_path', not both")
        return self

    def to_strategy(self):
        """
        Build the connection strategy matching the configured credentials.

        Returns:
            PasswordConnectionStrategy or PrivateKeyConnectionStrategy
        """
        from mtsftp.sftp.strategies import (
            PasswordConnectionStrategy,
            PrivateKeyConnectionStrategy,
        )

        if self.key_path:
            return PrivateKeyConnectionStrategy(
                username=self.username,
                private_key=self.key_path,
                remote_host=self.host,
                port=self.port,
                strict_host_checking=self.strict_host_checking,
            )
        return PasswordConnectionStrategy(
            username=self.username,
            password=self.password,
            remote_host=self.host,
            port=self.port,
            strict_host_checking=self.strict_host_checking,
        )


class Settings(BaseModel):
    """
    Complete mtsftp configuration.

    Example YAML:
        ```yaml
        redis:
          host: localhost
          port: 6379
        pool:
          lock_ttl_seconds: 300
          creation_ttl_seconds: 1800
        docker:
          image_max_age_days: 30
        sftp:
          host: sftp.example.com
          username: foo
          key_path: ~/.ssh/id_ed25519
          known_hosts_path: ~/.ssh/known_hosts
        ```
    """
    redis: RedisConfig = Field(default_factory=RedisConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    sftp: Optional[SFTPConfig] = None
