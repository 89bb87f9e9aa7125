"""Post-deployment verification.

The readiness gate runs first; only a ready stack gets the read-only
diagnostics (health aggregation, then load sampling). Each diagnostic runs
to completion on its own, so a crash in one still leaves the other's
report. Nothing here tears the stack down.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from . import docker_ops
from .health import ContainerExecProbe, HealthAggregator, HealthReport, HttpProbe, Probe, RedisPingProbe
from .readiness import ReadinessProber, ReadinessResult
from .sampler import LoadDistributionSampler, SampleReport
from .settings import Settings

logger = logging.getLogger(__name__)


def instance_target_name(cfg: Settings, instance: str) -> str:
    return cfg.instance_service_template.format(instance=instance)


def build_health_targets(cfg: Settings) -> list[tuple[str, Probe]]:
    """Proxy status, each instance directly, then the counter store."""
    targets: list[tuple[str, Probe]] = [("proxy", HttpProbe(cfg.proxy_status_url, cfg.probe_timeout_s))]

    if cfg.use_docker_exec and not docker_ops.docker_available(cfg.probe_timeout_s):
        logger.warning("Docker is not reachable; container probes will report unknown")

    health_cmd = ["wget", "-q", "-O-", f"http://localhost:{cfg.port}/health"]
    for instance in cfg.instances:
        name = instance_target_name(cfg, instance)
        probe: Probe
        if cfg.use_docker_exec:
            probe = ContainerExecProbe(
                name,
                health_cmd,
                expect='"healthy"',
                timeout_s=cfg.probe_timeout_s,
                project=cfg.compose_project,
            )
        else:
            probe = HttpProbe(
                cfg.instance_url_template.format(instance=instance),
                cfg.probe_timeout_s,
                expect_healthy_payload=True,
            )
        targets.append((name, probe))

    store: Probe
    if cfg.use_docker_exec:
        store = ContainerExecProbe(
            cfg.store_service,
            ["redis-cli", "ping"],
            expect="PONG",
            timeout_s=cfg.probe_timeout_s,
            project=cfg.compose_project,
        )
    else:
        store = RedisPingProbe(cfg.redis_url, cfg.probe_timeout_s)
    targets.append(("redis", store))
    return targets


def build_prober(cfg: Settings) -> ReadinessProber:
    return ReadinessProber(cfg.entry_url, cfg.ready_max_attempts, cfg.ready_interval_s, cfg.probe_timeout_s)


def build_sampler(cfg: Settings) -> LoadDistributionSampler:
    return LoadDistributionSampler(cfg.entry_url, cfg.sample_size, cfg.sample_delay_s, cfg.probe_timeout_s)


@dataclass
class VerificationReport:
    readiness: ReadinessResult
    health: HealthReport | None = None
    sample: SampleReport | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return (
            self.readiness.ready
            and self.health is not None
            and self.health.all_healthy
            and self.sample is not None
            and not self.sample.distribution_anomaly
        )

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "readiness": self.readiness.to_dict(),
            "health": self.health.to_dict() if self.health else None,
            "sample": self.sample.to_dict() if self.sample else None,
            "errors": self.errors,
        }


def run_verification(
    cfg: Settings,
    prober: ReadinessProber | None = None,
    aggregator: HealthAggregator | None = None,
    sampler: LoadDistributionSampler | None = None,
) -> VerificationReport:
    prober = prober or build_prober(cfg)
    report = VerificationReport(readiness=prober.run())
    if not report.readiness.ready:
        logger.error("Deployment verification stopped: services are not ready")
        return report

    try:
        aggregator = aggregator or HealthAggregator(build_health_targets(cfg))
        report.health = aggregator.run()
    except Exception as e:
        logger.exception("Health checks failed to run")
        report.errors["health"] = f"{type(e).__name__}: {e}"

    try:
        sampler = sampler or build_sampler(cfg)
        report.sample = sampler.run()
    except Exception as e:
        logger.exception("Load sampling failed to run")
        report.errors["sample"] = f"{type(e).__name__}: {e}"

    return report
