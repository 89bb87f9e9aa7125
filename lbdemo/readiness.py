from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable

import httpx

from .health import check_http
from .runtime import utc_now

logger = logging.getLogger(__name__)


class ReadinessState(str, Enum):
    WAITING = "waiting"
    READY = "ready"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ProbeAttempt:
    attempt: int
    target: str
    ok: bool
    outcome: str
    latency_ms: float | None = None
    timestamp: str = field(default_factory=utc_now)


@dataclass
class ReadinessResult:
    state: ReadinessState
    attempts: list[ProbeAttempt] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return self.state is ReadinessState.READY

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "ready": self.ready,
            "attempts": [asdict(a) for a in self.attempts],
        }


class ReadinessProber:
    """Poll a URL until it answers with a 2xx or the attempts run out.

    Exhausting the attempts only reports "not ready"; what to do about it
    is up to the caller. Each ``run`` starts from attempt 1.
    """

    def __init__(
        self,
        target: str,
        max_attempts: int = 30,
        interval_s: float = 2.0,
        timeout_s: float = 2.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.target = target
        self.max_attempts = max(1, int(max_attempts))
        self.interval_s = max(0.0, float(interval_s))
        self.timeout_s = timeout_s
        self.client = client
        self.sleep = sleep

    def probe_once(self, attempt: int) -> ProbeAttempt:
        check = check_http(self.target, self.timeout_s, self.client)
        return ProbeAttempt(attempt=attempt, target=self.target, ok=check.ok, outcome=check.message, latency_ms=check.latency_ms)

    def run(self) -> ReadinessResult:
        result = ReadinessResult(ReadinessState.WAITING)
        logger.info("Waiting for %s to be ready...", self.target)
        for attempt in range(1, self.max_attempts + 1):
            probe = self.probe_once(attempt)
            result.attempts.append(probe)
            if probe.ok:
                result.state = ReadinessState.READY
                logger.info("Services are ready! (attempt %d/%d)", attempt, self.max_attempts)
                return result
            logger.info("Attempt %d/%d - waiting for services... (%s)", attempt, self.max_attempts, probe.outcome)
            if attempt < self.max_attempts:
                self.sleep(self.interval_s)
        result.state = ReadinessState.EXHAUSTED
        logger.error("%s did not become ready after %d attempts", self.target, self.max_attempts)
        return result
