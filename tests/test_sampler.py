import itertools

import httpx

from lbdemo.sampler import LoadDistributionSampler


def _round_robin(*instances):
    cycle = itertools.cycle(instances)

    def handler(request):
        return httpx.Response(200, json={"instanceId": next(cycle), "requestNumber": 1})

    return handler


def _sampler(handler, n=10, sleeps=None):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return LoadDistributionSampler(
        "http://localhost/",
        sample_size=n,
        delay_s=0.5,
        client=client,
        sleep=(sleeps.append if sleeps is not None else lambda s: None),
    )


def test_round_robin_is_distributed():
    sleeps = []
    report = _sampler(_round_robin("1", "2"), sleeps=sleeps).run()

    assert [o.index for o in report.observations] == list(range(1, 11))
    assert [o.instance_id for o in report.observations] == ["1", "2"] * 5
    assert report.counts() == {"1": 5, "2": 5}
    assert report.failures == 0
    assert report.distribution_anomaly is False
    assert sleeps == [0.5] * 9


def test_single_instance_is_flagged():
    report = _sampler(_round_robin("1")).run()
    assert report.counts() == {"1": 10}
    assert report.distribution_anomaly is True


def test_failures_are_recorded_and_sampling_continues():
    calls = {"n": 0}
    answers = _round_robin("1", "2")

    def flaky(request):
        calls["n"] += 1
        if calls["n"] in (2, 5):
            raise httpx.ConnectError("refused", request=request)
        if calls["n"] == 7:
            return httpx.Response(502, text="Bad Gateway")
        if calls["n"] == 8:
            return httpx.Response(500, json={"error": "Something went wrong!", "instanceId": "2"})
        return answers(request)

    report = _sampler(flaky).run()

    assert len(report.observations) == 10
    assert calls["n"] == 10
    failed = [o.index for o in report.observations if not o.ok]
    assert failed == [2, 5, 7, 8]
    assert report.observations[1].instance_id is None
    assert "ConnectError" in report.observations[1].error
    assert report.observations[6].error.startswith("HTTP 502")
    # A 500 still tells us which replica answered.
    assert report.observations[7].instance_id == "2"
    assert report.observations[7].error == "HTTP 500"
    assert report.failures == 4
    assert report.distribution_anomaly is False


def test_everything_failing_is_an_anomaly():
    def down(request):
        raise httpx.ConnectError("refused", request=request)

    report = _sampler(down, n=3).run()
    assert report.counts() == {}
    assert report.failures == 3
    assert report.distribution_anomaly is True
    assert report.to_dict()["distribution_anomaly"] is True
