import json

import cli
from lbdemo.readiness import ReadinessResult, ReadinessState
from lbdemo.sampler import Observation, SampleReport


class _Runner:
    def __init__(self, result):
        self.result = result

    def run(self):
        return self.result


def test_ready_exit_codes(monkeypatch, capsys):
    seen = {}

    def fake_prober(cfg):
        seen["cfg"] = cfg
        return _Runner(ReadinessResult(ReadinessState.EXHAUSTED))

    monkeypatch.setattr(cli, "build_prober", fake_prober)

    code = cli.main(["--entry-url", "http://lb.test", "ready", "--max-attempts", "3", "--interval", "0"])

    assert code == 1
    assert seen["cfg"].entry_url == "http://lb.test"
    assert seen["cfg"].ready_max_attempts == 3
    assert json.loads(capsys.readouterr().out)["state"] == "exhausted"


def test_sample_prints_observations(monkeypatch, capsys):
    report = SampleReport("http://lb.test", [Observation(1, "1"), Observation(2, "2")])
    monkeypatch.setattr(cli, "build_sampler", lambda cfg: _Runner(report))

    code = cli.main(["sample", "--count", "2"])

    out = json.loads(capsys.readouterr().out)
    assert code == 0
    assert out["counts"] == {"1": 1, "2": 1}
    assert [o["instance_id"] for o in out["observations"]] == ["1", "2"]
