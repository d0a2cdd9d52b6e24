"""Shared fixtures for integration tests.

Provides:
- mysql_container: Session-scoped MySQL container
- mysql_server: Descriptor pointing at the container
- db: Function-scoped client whose primary and replica both use the container
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import pytest
from pydantic import SecretStr

from replicadb import DatabaseClient, DatabaseSettings, ServerDescriptor

if TYPE_CHECKING:
    from collections.abc import Iterator


class MySqlContainerProtocol(Protocol):
    """Protocol for MySQL container interface."""

    def get_exposed_port(self, port: int) -> int: ...
    def get_container_host_ip(self) -> str: ...
    def start(self) -> MySqlContainerProtocol: ...
    def stop(self) -> None: ...


def _check_docker_available() -> bool:
    """Check if Docker is available using docker client.

    Tries multiple socket locations for compatibility with:
    - Standard Linux Docker (/var/run/docker.sock)
    - macOS Docker Desktop (~/.docker/run/docker.sock)
    - Custom DOCKER_HOST environment variable
    """
    try:
        from pathlib import Path

        from docker import DockerClient  # type: ignore[import-untyped]
        from docker.errors import DockerException  # type: ignore[import-untyped]

        socket_locations = [
            None,
            "unix:///var/run/docker.sock",
            f"unix://{Path.home()}/.docker/run/docker.sock",
        ]

        for socket_url in socket_locations:
            try:
                if socket_url is None:
                    from docker import from_env  # type: ignore[import-untyped]

                    client = from_env()
                else:
                    client = DockerClient(base_url=socket_url)

                client.ping()
                return True
            except DockerException:
                continue

        return False
    except ImportError:
        return False


def _configure_docker_environment() -> None:
    """Set DOCKER_HOST when only the macOS Docker Desktop socket exists."""
    import os
    from pathlib import Path

    if os.environ.get("DOCKER_HOST"):
        return

    macos_socket = Path.home() / ".docker" / "run" / "docker.sock"
    if macos_socket.exists():
        os.environ["DOCKER_HOST"] = f"unix://{macos_socket}"


def _create_mysql_container() -> MySqlContainerProtocol:
    from typing import cast

    from testcontainers.mysql import MySqlContainer  # type: ignore[import-untyped]

    container = MySqlContainer(
        "mysql:8.0",
        username="test_user",
        password="test_password",
        dbname="test_db",
    )
    return cast(MySqlContainerProtocol, container)


@pytest.fixture(scope="session")
def mysql_container() -> Iterator[MySqlContainerProtocol]:
    """Provide session-scoped MySQL container.

    Skips:
        If Docker daemon or testcontainers is not available.
    """
    _configure_docker_environment()

    if not _check_docker_available():
        pytest.skip(
            "Docker daemon not available. "
            "Install Docker Desktop (macOS) or Docker Engine (Linux) to run integration tests."
        )

    try:
        container = _create_mysql_container()
    except ImportError as e:
        pytest.skip(f"testcontainers not installed: {e}")

    container.start()

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def mysql_server(mysql_container: MySqlContainerProtocol) -> ServerDescriptor:
    return ServerDescriptor(
        host=mysql_container.get_container_host_ip(),
        port=int(mysql_container.get_exposed_port(3306)),
        user="test_user",
        password=SecretStr("test_password"),
        database="test_db",
    )


@pytest.fixture
def db(mysql_server: ServerDescriptor) -> Iterator[DatabaseClient]:
    """Client with a primary and one "replica" that are the same server.

    Creates a fresh ``people`` table for each test.
    """
    settings = DatabaseSettings.from_servers(mysql_server, mysql_server)

    with DatabaseClient(settings) as client:
        client.query("DROP TABLE IF EXISTS people")
        client.query(
            """
            CREATE TABLE people (
                id INT AUTO_INCREMENT PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                age INT NULL
            ) ENGINE=InnoDB
            """
        )
        client.close()

        yield client

        client.query("DROP TABLE IF EXISTS people")
