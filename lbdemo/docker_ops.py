from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import docker
import requests
from docker.errors import DockerException
from docker.models.containers import Container

logger = logging.getLogger(__name__)

COMPOSE_SERVICE_LABEL = "com.docker.compose.service"
COMPOSE_PROJECT_LABEL = "com.docker.compose.project"

# Conventional exit status of a command killed by a timeout.
EXIT_TIMEOUT = 124


class ContainerUnavailable(Exception):
    """The container could not be reached to run anything in it."""


@dataclass(frozen=True)
class ExecResult:
    exit_code: int
    output: str


def _client(timeout_s: float | None = None) -> docker.DockerClient:
    if timeout_s is None:
        return docker.from_env()
    return docker.from_env(timeout=max(1, int(timeout_s)))


def docker_available(timeout_s: float | None = None) -> bool:
    try:
        with _client(timeout_s) as c:
            c.ping()
        return True
    except (DockerException, requests.exceptions.RequestException):
        return False


def find_service_container(client: docker.DockerClient, service: str, project: str | None = None) -> Container:
    """Return the running container of a compose service."""
    filters: dict[str, Any] = {"label": [f"{COMPOSE_SERVICE_LABEL}={service}"], "status": "running"}
    if project:
        filters["label"].append(f"{COMPOSE_PROJECT_LABEL}={project}")
    containers = client.containers.list(filters=filters)
    if not containers:
        raise ContainerUnavailable(f"No running container for service '{service}'.")
    return containers[0]


def exec_in_service(
    service: str,
    command: list[str],
    project: str | None = None,
    timeout_s: float | None = None,
) -> ExecResult:
    """Run a command inside a compose service's container (like ``docker compose exec -T``)."""
    try:
        with _client(timeout_s) as c:
            container = find_service_container(c, service, project)
            exit_code, output = container.exec_run(command, stdout=True, stderr=True)
    except requests.exceptions.Timeout:
        logger.warning("exec in %s timed out after %ss", service, timeout_s)
        return ExecResult(exit_code=EXIT_TIMEOUT, output="")
    except (DockerException, requests.exceptions.ConnectionError) as e:
        raise ContainerUnavailable(f"Docker error for service '{service}': {e}") from e
    text = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else str(output or "")
    return ExecResult(exit_code=int(exit_code if exit_code is not None else -1), output=text)
