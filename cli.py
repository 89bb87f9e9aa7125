from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys

from lbdemo.app import LOG_FORMAT
from lbdemo.health import HealthAggregator
from lbdemo.settings import settings
from lbdemo.verify import build_health_targets, build_prober, build_sampler, run_verification


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Load-balanced web tier diagnostics")
    p.add_argument("--entry-url", default=settings.entry_url, help="Balancer entry point")
    p.add_argument("--timeout", type=float, default=settings.probe_timeout_s, help="Per-request timeout (s)")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="cmd", required=True)

    s_ready = sub.add_parser("ready", help="Wait until the entry point answers")
    s_ready.add_argument("--max-attempts", type=int, default=settings.ready_max_attempts)
    s_ready.add_argument("--interval", type=float, default=settings.ready_interval_s)

    s_health = sub.add_parser("health", help="Check proxy, instances and store")
    s_health.add_argument("--no-docker", action="store_true", help="Probe instances over HTTP instead of exec")

    s_sample = sub.add_parser("sample", help="Record which instance answers each request")
    s_sample.add_argument("--count", type=int, default=settings.sample_size)
    s_sample.add_argument("--delay", type=float, default=settings.sample_delay_s)

    s_verify = sub.add_parser("verify", help="ready, then health, then sample")
    s_verify.add_argument("--no-docker", action="store_true", help="Probe instances over HTTP instead of exec")

    args = p.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    overrides: dict = {"entry_url": args.entry_url, "probe_timeout_s": args.timeout}
    if getattr(args, "no_docker", False):
        overrides["use_docker_exec"] = False
    if args.cmd == "ready":
        overrides.update(ready_max_attempts=args.max_attempts, ready_interval_s=args.interval)
    if args.cmd == "sample":
        overrides.update(sample_size=args.count, sample_delay_s=args.delay)
    cfg = dataclasses.replace(settings, **overrides)

    if args.cmd == "ready":
        result = build_prober(cfg).run()
        _print(result.to_dict())
        return 0 if result.ready else 1

    if args.cmd == "health":
        report = HealthAggregator(build_health_targets(cfg)).run()
        _print(report.to_dict())
        return 0 if report.all_healthy else 1

    if args.cmd == "sample":
        sample = build_sampler(cfg).run()
        _print(sample.to_dict())
        return 0 if not sample.distribution_anomaly else 1

    if args.cmd == "verify":
        report = run_verification(cfg)
        _print(report.to_dict())
        return 0 if report.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
