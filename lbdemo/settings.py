from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    # Application instance
    instance_id: str = os.getenv("INSTANCE_ID", "unknown")
    port: int = _env_int("PORT", 3000)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    load_test_iterations: int = _env_int("LBDEMO_LOAD_TEST_ITERATIONS", 1_000_000)

    # Counter store
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    store_timeout_s: float = _env_float("LBDEMO_STORE_TIMEOUT_S", 2.0)
    # Identities always listed in stats, even before their first visit.
    known_instances: tuple[str, ...] = _env_list("KNOWN_INSTANCES")

    # Deployment verification
    entry_url: str = os.getenv("LBDEMO_ENTRY_URL", "http://localhost:80")
    proxy_status_url: str = os.getenv("LBDEMO_PROXY_STATUS_URL", "http://localhost:8080/api/overview")
    ready_max_attempts: int = _env_int("LBDEMO_READY_MAX_ATTEMPTS", 30)
    ready_interval_s: float = _env_float("LBDEMO_READY_INTERVAL_S", 2.0)
    probe_timeout_s: float = _env_float("LBDEMO_PROBE_TIMEOUT_S", 2.0)
    sample_size: int = _env_int("LBDEMO_SAMPLE_SIZE", 10)
    sample_delay_s: float = _env_float("LBDEMO_SAMPLE_DELAY_S", 0.5)

    # Health targets
    instances: tuple[str, ...] = _env_list("LBDEMO_INSTANCES", "1,2")
    use_docker_exec: bool = _env_bool("LBDEMO_USE_DOCKER_EXEC", True)
    compose_project: str | None = os.getenv("LBDEMO_COMPOSE_PROJECT") or None
    instance_service_template: str = os.getenv("LBDEMO_INSTANCE_SERVICE_TEMPLATE", "web-app-{instance}")
    store_service: str = os.getenv("LBDEMO_STORE_SERVICE", "redis")
    instance_url_template: str = os.getenv("LBDEMO_INSTANCE_URL_TEMPLATE", "http://localhost:300{instance}/health")


settings = Settings()
