#!/usr/bin/env python3
"""Measure nREPL connect, describe and eval latency against a live server."""

from __future__ import annotations

import argparse
import json
import platform
import statistics
import time
from pathlib import Path
from typing import Any

from nrepl_client import NreplClient, NreplError, configure_logging


def percentile(values: list[float], pct: float) -> float:
    if not values:
        return 0.0
    if len(values) == 1:
        return values[0]
    ordered = sorted(values)
    rank = (len(ordered) - 1) * pct
    lower = int(rank)
    upper = min(lower + 1, len(ordered) - 1)
    if lower == upper:
        return ordered[lower]
    weight = rank - lower
    return ordered[lower] * (1.0 - weight) + ordered[upper] * weight


def metric_summary(values: list[float]) -> dict[str, Any]:
    if not values:
        return {
            "count": 0,
            "min_ms": 0.0,
            "max_ms": 0.0,
            "mean_ms": 0.0,
            "p50_ms": 0.0,
            "p95_ms": 0.0,
        }
    return {
        "count": len(values),
        "min_ms": min(values),
        "max_ms": max(values),
        "mean_ms": statistics.fmean(values),
        "p50_ms": percentile(values, 0.50),
        "p95_ms": percentile(values, 0.95),
    }


def elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def benchmark_connect(host: str, port: int, iterations: int) -> list[float]:
    samples: list[float] = []
    for _ in range(iterations):
        start = time.perf_counter()
        client = NreplClient.connect(host, port)
        client.clone()
        samples.append(elapsed_ms(start))
        client.disconnect()
    return samples


def benchmark_describe(client: NreplClient, iterations: int) -> list[float]:
    samples: list[float] = []
    for _ in range(iterations):
        start = time.perf_counter()
        client.describe()
        samples.append(elapsed_ms(start))
    return samples


def benchmark_eval(client: NreplClient, code: str, iterations: int) -> dict[str, Any]:
    samples: list[float] = []
    errors = 0
    for _ in range(iterations):
        start = time.perf_counter()
        try:
            result = client.eval(code)
        except NreplError:
            errors += 1
            continue
        if result.has_error:
            errors += 1
            continue
        samples.append(elapsed_ms(start))

    return {
        "latency_ms": metric_summary(samples),
        "successful": len(samples),
        "error_count": errors,
        "error_rate": errors / iterations if iterations else 0.0,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, required=True)
    parser.add_argument("--label", required=True, help="Run label, e.g. baseline/candidate")
    parser.add_argument("--output", required=True, help="Output JSON path")
    parser.add_argument("--connect-iters", type=int, default=15)
    parser.add_argument("--describe-iters", type=int, default=80)
    parser.add_argument("--eval-iters", type=int, default=80)
    parser.add_argument("--output-lines", type=int, default=200, help="Lines printed by the output-heavy eval")
    parser.add_argument("--log-level", default=None, help="Enable client logging at this level")
    args = parser.parse_args()

    if args.log_level:
        configure_logging(args.log_level)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    connect_samples = benchmark_connect(args.host, args.port, args.connect_iters)
    with NreplClient.connect(args.host, args.port) as client:
        describe_samples = benchmark_describe(client, args.describe_iters)
        simple = benchmark_eval(client, "(+ 1 2 3)", args.eval_iters)
        chatty = benchmark_eval(client, f"(dotimes [i {args.output_lines}] (println i))", args.eval_iters)

    payload = {
        "label": args.label,
        "timestamp_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "environment": {
            "platform": platform.platform(),
            "python_version": platform.python_version(),
            "server": f"{args.host}:{args.port}",
        },
        "config": {
            "connect_iters": args.connect_iters,
            "describe_iters": args.describe_iters,
            "eval_iters": args.eval_iters,
            "output_lines": args.output_lines,
        },
        "metrics": {
            "connect_and_clone_ms": metric_summary(connect_samples),
            "describe_ms": metric_summary(describe_samples),
            "eval_simple": simple,
            "eval_output_heavy": chatty,
        },
    }

    output_path.write_text(json.dumps(payload, indent=2))
    print(f"Wrote {output_path}")


if __name__ == "__main__":
    main()
