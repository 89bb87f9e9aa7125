from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Callable

import httpx

from .runtime import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    index: int
    instance_id: str | None
    error: str | None = None
    timestamp: str = field(default_factory=utc_now)

    @property
    def ok(self) -> bool:
        return self.error is None and self.instance_id is not None


@dataclass
class SampleReport:
    """Raw observations in request order; no statistics beyond counts."""

    url: str
    observations: list[Observation] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return dict(Counter(o.instance_id for o in self.observations if o.ok))

    @property
    def failures(self) -> int:
        return sum(1 for o in self.observations if not o.ok)

    @property
    def distribution_anomaly(self) -> bool:
        # Everything answered by one replica (or by none at all).
        return len(self.counts()) < 2

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "counts": self.counts(),
            "failures": self.failures,
            "distribution_anomaly": self.distribution_anomaly,
            "observations": [asdict(o) for o in self.observations],
        }


class LoadDistributionSampler:
    """Send N sequential requests to the entry point and note who answered."""

    def __init__(
        self,
        url: str,
        sample_size: int = 10,
        delay_s: float = 0.5,
        timeout_s: float = 2.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.url = url
        self.sample_size = max(0, int(sample_size))
        self.delay_s = max(0.0, float(delay_s))
        self.timeout_s = timeout_s
        self.client = client
        self.sleep = sleep

    def observe(self, client: httpx.Client, index: int) -> Observation:
        try:
            resp = client.get(self.url, timeout=self.timeout_s)
        except httpx.HTTPError as e:
            return Observation(index, None, f"{type(e).__name__}: {e}")
        try:
            body = resp.json()
        except ValueError:
            return Observation(index, None, f"HTTP {resp.status_code}: body is not JSON")
        instance_id = body.get("instanceId") if isinstance(body, dict) else None
        if instance_id is not None:
            instance_id = str(instance_id)
        if not resp.is_success:
            return Observation(index, instance_id, f"HTTP {resp.status_code}")
        if instance_id is None:
            return Observation(index, None, "no instanceId in response")
        return Observation(index, instance_id)

    def run(self) -> SampleReport:
        report = SampleReport(self.url)
        if self.client is not None:
            self._collect(self.client, report)
        else:
            with httpx.Client(timeout=self.timeout_s, follow_redirects=False) as client:
                self._collect(client, report)
        if report.distribution_anomaly:
            logger.warning("All successful requests hit %s; load is not being distributed", list(report.counts()) or "no instance")
        return report

    def _collect(self, client: httpx.Client, report: SampleReport) -> None:
        for i in range(1, self.sample_size + 1):
            obs = self.observe(client, i)
            report.observations.append(obs)
            if obs.ok:
                logger.info("Request %d: Instance %s", i, obs.instance_id)
            else:
                logger.warning("Request %d: failed (%s)", i, obs.error)
            if i < self.sample_size:
                self.sleep(self.delay_s)
