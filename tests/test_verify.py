from lbdemo import verify
from lbdemo.health import ContainerExecProbe, HealthStatus, HttpProbe, ProbeOutcome, RedisPingProbe
from lbdemo.readiness import ReadinessResult, ReadinessState
from lbdemo.sampler import Observation, SampleReport
from lbdemo.settings import Settings


class _Stub:
    def __init__(self, result=None, exc=None):
        self.result = result
        self.exc = exc
        self.runs = 0

    def run(self):
        self.runs += 1
        if self.exc:
            raise self.exc
        return self.result


def _sample(*ids):
    return SampleReport("http://localhost:80", [Observation(i + 1, x) for i, x in enumerate(ids)])


def test_not_ready_stops_before_diagnostics():
    prober = _Stub(ReadinessResult(ReadinessState.EXHAUSTED))
    aggregator, sampler = _Stub(), _Stub()

    report = verify.run_verification(Settings(), prober=prober, aggregator=aggregator, sampler=sampler)

    assert report.readiness.ready is False
    assert aggregator.runs == 0 and sampler.runs == 0
    assert report.ok is False
    assert report.to_dict()["health"] is None


def test_crashing_health_does_not_skip_sampling():
    prober = _Stub(ReadinessResult(ReadinessState.READY))
    aggregator = _Stub(exc=RuntimeError("docker socket gone"))
    sampler = _Stub(_sample("1", "2", "1", "2"))

    report = verify.run_verification(Settings(), prober=prober, aggregator=aggregator, sampler=sampler)

    assert sampler.runs == 1
    assert report.sample.counts() == {"1": 2, "2": 2}
    assert report.health is None
    assert report.errors == {"health": "RuntimeError: docker socket gone"}
    assert report.ok is False


def test_full_pass():
    from lbdemo.health import HealthAggregator

    ok = lambda: ProbeOutcome(HealthStatus.HEALTHY, "OK")  # noqa: E731
    report = verify.run_verification(
        Settings(),
        prober=_Stub(ReadinessResult(ReadinessState.READY)),
        aggregator=HealthAggregator([("proxy", ok), ("web-app-1", ok), ("web-app-2", ok), ("redis", ok)]),
        sampler=_Stub(_sample("1", "2")),
    )
    assert report.ok is True
    assert report.to_dict()["ok"] is True


def test_default_targets_with_docker_exec(monkeypatch):
    monkeypatch.setattr(verify.docker_ops, "docker_available", lambda timeout_s=None: True)
    cfg = Settings(instances=("1", "2"), use_docker_exec=True, compose_project="demo")

    targets = dict(verify.build_health_targets(cfg))

    assert list(targets) == ["proxy", "web-app-1", "web-app-2", "redis"]
    assert isinstance(targets["proxy"], HttpProbe)
    assert targets["proxy"].url == cfg.proxy_status_url
    inst = targets["web-app-2"]
    assert isinstance(inst, ContainerExecProbe)
    assert inst.service == "web-app-2"
    assert inst.project == "demo"
    assert inst.command[-1] == "http://localhost:3000/health"
    assert targets["redis"].command == ["redis-cli", "ping"]


def test_default_targets_without_docker():
    cfg = Settings(instances=("a", "b", "c"), use_docker_exec=False, instance_url_template="http://app-{instance}:3000/health")

    targets = dict(verify.build_health_targets(cfg))

    assert list(targets) == ["proxy", "web-app-a", "web-app-b", "web-app-c", "redis"]
    assert targets["web-app-b"].url == "http://app-b:3000/health"
    assert targets["web-app-b"].expect_healthy_payload is True
    assert isinstance(targets["redis"], RedisPingProbe)


def test_instance_targets_follow_service_template():
    cfg = Settings(instances=("1", "2"), use_docker_exec=False, instance_service_template="app{instance}")

    targets = dict(verify.build_health_targets(cfg))

    assert list(targets) == ["proxy", "app1", "app2", "redis"]


def test_docker_check_uses_probe_timeout(monkeypatch):
    seen = []
    monkeypatch.setattr(verify.docker_ops, "docker_available", lambda timeout_s=None: seen.append(timeout_s) or True)
    cfg = Settings(instances=("1",), use_docker_exec=True, instance_service_template="app{instance}", probe_timeout_s=2.5)

    targets = dict(verify.build_health_targets(cfg))

    assert seen == [2.5]
    assert targets["app1"].service == "app1"
