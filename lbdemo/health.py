from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol, Sequence

import httpx
import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from . import docker_ops
from .docker_ops import ContainerUnavailable, ExecResult
from .runtime import utc_now

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    # The probe could not be dispatched at all.
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HttpCheck:
    ok: bool
    message: str
    latency_ms: float | None
    # False when the request never reached a server (refused, DNS, bad scheme).
    reachable: bool = True


def check_http(
    url: str,
    timeout_s: float = 2.0,
    client: httpx.Client | None = None,
    expect_healthy_payload: bool = False,
) -> HttpCheck:
    """GET a URL once with a bounded timeout.

    Success is a 2xx status; with ``expect_healthy_payload`` the body must
    also be JSON ``{"status": "healthy"}``.
    """
    start = time.time()

    def elapsed() -> float:
        return round((time.time() - start) * 1000.0, 2)

    try:
        if client is None:
            with httpx.Client(timeout=timeout_s, follow_redirects=False) as own:
                resp = own.get(url)
        else:
            resp = client.get(url, timeout=timeout_s)
    except (httpx.ConnectError, httpx.ConnectTimeout, httpx.UnsupportedProtocol) as e:
        return HttpCheck(False, f"No response: {type(e).__name__}", elapsed(), reachable=False)
    except httpx.TimeoutException:
        return HttpCheck(False, "Timed out", elapsed())
    except httpx.HTTPError as e:
        return HttpCheck(False, f"Error: {type(e).__name__}: {e}", elapsed())

    latency_ms = elapsed()
    if not resp.is_success:
        return HttpCheck(False, f"HTTP {resp.status_code}", latency_ms)
    if not expect_healthy_payload:
        return HttpCheck(True, f"HTTP {resp.status_code}", latency_ms)
    try:
        data = resp.json()
    except ValueError:
        return HttpCheck(False, "Invalid JSON", latency_ms)
    if isinstance(data, dict) and data.get("status") == "healthy":
        return HttpCheck(True, "Healthy", latency_ms)
    return HttpCheck(False, f"Unhealthy payload: {data!r}", latency_ms)


@dataclass(frozen=True)
class ProbeOutcome:
    status: HealthStatus
    detail: str
    latency_ms: float | None = None


class Probe(Protocol):
    kind: str

    def __call__(self) -> ProbeOutcome: ...


class HttpProbe:
    kind = "http"

    def __init__(
        self,
        url: str,
        timeout_s: float = 2.0,
        expect_healthy_payload: bool = False,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.expect_healthy_payload = expect_healthy_payload
        self.client = client

    def __call__(self) -> ProbeOutcome:
        check = check_http(self.url, self.timeout_s, self.client, self.expect_healthy_payload)
        if check.ok:
            return ProbeOutcome(HealthStatus.HEALTHY, check.message, check.latency_ms)
        if not check.reachable:
            return ProbeOutcome(HealthStatus.UNKNOWN, check.message, check.latency_ms)
        return ProbeOutcome(HealthStatus.UNHEALTHY, check.message, check.latency_ms)


class ContainerExecProbe:
    """Run a command inside a compose service's container.

    This reaches the target from its own process, bypassing the balancer.
    """

    kind = "exec"

    def __init__(
        self,
        service: str,
        command: list[str],
        expect: str | None = None,
        timeout_s: float = 2.0,
        project: str | None = None,
        runner: Callable[..., ExecResult] = docker_ops.exec_in_service,
    ) -> None:
        self.service = service
        self.command = command
        self.expect = expect
        self.timeout_s = timeout_s
        self.project = project
        self.runner = runner

    def __call__(self) -> ProbeOutcome:
        start = time.time()
        try:
            result = self.runner(self.service, self.command, project=self.project, timeout_s=self.timeout_s)
        except ContainerUnavailable as e:
            return ProbeOutcome(HealthStatus.UNKNOWN, str(e))
        latency_ms = round((time.time() - start) * 1000.0, 2)
        if result.exit_code != 0:
            return ProbeOutcome(HealthStatus.UNHEALTHY, f"exit code {result.exit_code}", latency_ms)
        if self.expect is not None and self.expect not in result.output:
            return ProbeOutcome(HealthStatus.UNHEALTHY, f"unexpected output: {result.output.strip()[:80]!r}", latency_ms)
        return ProbeOutcome(HealthStatus.HEALTHY, "OK", latency_ms)


class RedisPingProbe:
    kind = "redis"

    def __init__(self, url: str, timeout_s: float = 2.0) -> None:
        self.url = url
        self.timeout_s = timeout_s

    def __call__(self) -> ProbeOutcome:
        start = time.time()
        client = redis.Redis.from_url(self.url, socket_timeout=self.timeout_s, socket_connect_timeout=self.timeout_s)
        try:
            pong = client.ping()
        except RedisTimeoutError:
            return ProbeOutcome(HealthStatus.UNHEALTHY, "Timed out")
        except RedisConnectionError as e:
            return ProbeOutcome(HealthStatus.UNKNOWN, f"No response: {e}")
        except RedisError as e:
            return ProbeOutcome(HealthStatus.UNHEALTHY, f"Error: {type(e).__name__}: {e}")
        finally:
            client.close()
        latency_ms = round((time.time() - start) * 1000.0, 2)
        if pong:
            return ProbeOutcome(HealthStatus.HEALTHY, "PONG", latency_ms)
        return ProbeOutcome(HealthStatus.UNHEALTHY, "No PONG", latency_ms)


@dataclass(frozen=True)
class TargetHealth:
    target: str
    kind: str
    status: HealthStatus
    detail: str
    latency_ms: float | None = None
    checked_at: str = field(default_factory=utc_now)


@dataclass
class HealthReport:
    results: list[TargetHealth] = field(default_factory=list)

    @property
    def all_healthy(self) -> bool:
        return bool(self.results) and all(r.status is HealthStatus.HEALTHY for r in self.results)

    def status_of(self, target: str) -> HealthStatus | None:
        for r in self.results:
            if r.target == target:
                return r.status
        return None

    def to_dict(self) -> dict:
        return {
            "all_healthy": self.all_healthy,
            "results": [
                {
                    "target": r.target,
                    "kind": r.kind,
                    "status": r.status.value,
                    "detail": r.detail,
                    "latency_ms": r.latency_ms,
                    "checked_at": r.checked_at,
                }
                for r in self.results
            ],
        }


class HealthAggregator:
    """Evaluate every target's probe, one by one, with no short-circuit."""

    def __init__(self, targets: Sequence[tuple[str, Probe]]):
        self.targets = list(targets)

    def run(self) -> HealthReport:
        report = HealthReport()
        for name, probe in self.targets:
            kind = getattr(probe, "kind", "probe")
            try:
                outcome = probe()
            except Exception as e:
                logger.exception("Health probe for %s could not run", name)
                outcome = ProbeOutcome(HealthStatus.UNKNOWN, f"Probe error: {type(e).__name__}: {e}")
            if outcome.status is HealthStatus.HEALTHY:
                logger.info("%s is healthy", name)
            else:
                logger.warning("%s may not be ready (%s: %s)", name, outcome.status.value, outcome.detail)
            report.results.append(TargetHealth(name, kind, outcome.status, outcome.detail, outcome.latency_ms))
        return report
