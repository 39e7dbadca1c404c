"""
Command-line launcher for the pipeline demonstrations.

    python main.py --list
    python main.py basic
    python main.py grouping parallel --workers 4
    python main.py --all
"""

import argparse
import json
import sys
from time import perf_counter

from demos import CATEGORIES, DemoNotFoundError, list_demos, run_demo
from models import get_settings
from utils import PipelineError, get_performance_summary, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run lazy collection pipeline demonstrations")
    parser.add_argument("targets", nargs="*",
                        help="Demonstration names or categories (" + ", ".join(CATEGORIES) + ")")
    parser.add_argument("--list", action="store_true", help="List demonstrations and exit")
    parser.add_argument("--all", action="store_true", help="Run every demonstration")
    parser.add_argument("--workers", type=int, default=None,
                        help="Run parallel-capable demonstrations on this many workers")
    parser.add_argument("--log-level", default=None, help="Override PIPELINE_LOG_LEVEL")
    return parser


def resolve_targets(targets, run_all: bool):
    """Expand categories into demonstration names, keeping the given order."""
    if run_all:
        return [info.name for info in list_demos()]
    names = []
    for target in targets:
        if target in CATEGORIES:
            names.extend(info.name for info in list_demos(target))
        else:
            names.append(target)
    return names


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or get_settings().log_level)

    if args.list or not (args.targets or args.all):
        for category in CATEGORIES:
            print(f"\n--- {category} ---")
            for info in list_demos(category):
                print(f"  {info.name:<22} {info.description}")
        return 0

    if args.workers is not None and args.workers < 1:
        print("--workers must be >= 1", file=sys.stderr)
        return 2

    status = 0
    for name in resolve_targets(args.targets, args.all):
        print(f"\n--- Demo: {name} ---")
        t0 = perf_counter()
        try:
            result = run_demo(name, workers=args.workers)
        except DemoNotFoundError as e:
            print(f"  {e}", file=sys.stderr)
            status = 1
            continue
        except PipelineError as e:
            print(f"  failed: {e}", file=sys.stderr)
            status = 1
            continue
        t1 = perf_counter()
        print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
        print(f"Time: {(t1 - t0) * 1000:.2f}ms")

    summary = get_performance_summary()
    print(f"\n{summary['total_runs']} pipeline run(s), {summary['failed_runs']} failed, "
          f"{summary['total_time_ms']:.2f}ms total")
    return status


if __name__ == "__main__":
    sys.exit(main())
