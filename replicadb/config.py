"""Configuration models for the database facade.

- `ServerDescriptor`: connection settings for one physical server
- `DatabaseSettings`: named server groups, the active one routed by the client

Index 0 of the active group is the primary (write) server, every further
index is a read replica.
"""

from __future__ import annotations

from typing import Any, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerDescriptor(BaseModel):
    """Connection settings for a single MySQL-compatible server.

    The legacy configuration keys ``hostname`` and ``username`` are
    accepted as aliases for ``host`` and ``user``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    host: str = Field(default="localhost", validation_alias=AliasChoices("host", "hostname"))
    user: str = Field(default="root", validation_alias=AliasChoices("user", "username"))
    password: SecretStr = Field(default=SecretStr(""))
    database: str = Field(default="")
    port: int = Field(default=3306, ge=1, le=65535)
    charset: str = Field(default="utf8mb4", min_length=1)
    connect_timeout: float = Field(default=10.0, gt=0.0, le=300.0)

    def with_overrides(
        self,
        *,
        host: str | None = None,
        user: str | None = None,
        password: str | SecretStr | None = None,
        database: str | None = None,
        port: int | None = None,
        charset: str | None = None,
    ) -> Self:
        """Return a copy where every override that is not None wins.

        Parameters
        ----------
        host, user, password, database, port, charset
            Values taking precedence over the descriptor's own.

        Returns
        -------
        Self
            A validated descriptor; unchanged copy when nothing is overridden.
        """
        overrides: dict[str, Any] = {
            "host": host,
            "user": user,
            "password": password,
            "database": database,
            "port": port,
            "charset": charset,
        }
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        return self.model_validate({**self.model_dump(), **updates})

    def for_replica(self, host: str, port: int | None = None) -> Self:
        """Create a replica descriptor sharing credentials and database.

        Examples
        --------
        >>> primary = ServerDescriptor(host="primary.db.com", user="app", database="shop")
        >>> replica = primary.for_replica("replica-1.db.com")
        """
        return self.model_copy(update={"host": host, "port": port if port is not None else self.port})

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class DatabaseSettings(BaseSettings):
    """Server groups loaded from the environment or built in code.

    Environment variables use the ``DB_`` prefix, nested values the ``__``
    delimiter, and groups are given as JSON::

        DB_ACTIVE=production
        DB_CONNECTIONS='{"production": [{"hostname": "primary", ...}, {"hostname": "replica-1", ...}]}'

    Examples
    --------
    >>> settings = DatabaseSettings.with_replica_hosts(
    ...     ServerDescriptor(host="primary.db.com", user="app", database="shop"),
    ...     ["replica-1.db.com", "replica-2.db.com"],
    ... )
    >>> settings.servers[0].host
    'primary.db.com'
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DB_",
        env_nested_delimiter="__",
        extra="forbid",
        frozen=True,
    )

    active: str = Field(default="default")
    connections: dict[str, tuple[ServerDescriptor, ...]] = Field(
        default_factory=lambda: {"default": (ServerDescriptor(),)}
    )

    @model_validator(mode="after")
    def _check_active_group(self) -> Self:
        group = self.connections.get(self.active)
        if group is None:
            msg = f"Active connection group {self.active!r} is not configured"
            raise ValueError(msg)
        if not group:
            msg = f"Connection group {self.active!r} lists no servers"
            raise ValueError(msg)
        return self

    @property
    def servers(self) -> tuple[ServerDescriptor, ...]:
        """Servers of the active group; index 0 is the primary."""
        return self.connections[self.active]

    @property
    def primary(self) -> ServerDescriptor:
        return self.servers[0]

    @property
    def replicas(self) -> tuple[ServerDescriptor, ...]:
        return self.servers[1:]

    @classmethod
    def from_servers(cls, primary: ServerDescriptor, *replicas: ServerDescriptor, active: str = "default") -> Self:
        return cls(active=active, connections={active: (primary, *replicas)})

    @classmethod
    def with_replica_hosts(cls, primary: ServerDescriptor, hosts: list[str]) -> Self:
        """Create settings with replicas derived from the primary.

        Parameters
        ----------
        primary
            Primary server descriptor.
        hosts
            Replica hostnames; everything else is inherited from ``primary``.
        """
        return cls.from_servers(primary, *(primary.for_replica(host) for host in hosts))
