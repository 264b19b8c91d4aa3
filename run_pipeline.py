#!/usr/bin/env python3
"""Pipeline runner for the subway ridership vs. COVID-19 analysis."""

from __future__ import annotations

import argparse
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from subway_ridership.enrich_covid import load_case_counts
from subway_ridership.pipeline import ANALYSIS_YEARS, RidershipPipeline
from subway_ridership.plot_ridership import plot_ridership_vs_cases
from subway_ridership.utils.runtime import configure_logging, find_project_root


PROJECT_ROOT = find_project_root(Path(__file__).resolve().parent)


def print_header(message: str) -> None:
    print(f"\n{'=' * 48}")
    print(message)
    print(f"{'=' * 48}\n")


def print_step(message: str) -> None:
    print(f"[STEP] {message}")


def print_error(message: str) -> None:
    print(f"[ERROR] {message}", file=sys.stderr)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Reconstruct daily subway ridership from MTA turnstile counters for "
            f"{ANALYSIS_YEARS[0]}-{ANALYSIS_YEARS[-1]} and compare it to NYC COVID-19 cases."
        )
    )
    parser.add_argument(
        "--rebuild-snapshot",
        action="store_true",
        help="Delete the cached ridership snapshot and rebuild it from raw turnstile data.",
    )
    parser.add_argument(
        "--offline-cases",
        type=Path,
        metavar="CSV",
        help="Read COVID-19 case counts from a CSV export instead of the NYC Open Data API.",
    )
    parser.add_argument(
        "--skip-plot",
        action="store_true",
        help="Skip rendering results/ridership_vs_cases.png.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    started = time.monotonic()
    run_summary: List[str] = []

    print_header("Subway Ridership vs. COVID-19 Pipeline")
    print(f"Started at: {datetime.now().isoformat(timespec='seconds')}")
    print(f"Project root: {PROJECT_ROOT}")

    log_path = configure_logging(PROJECT_ROOT, "run_pipeline", timestamped=True)
    print_step(f"Logging to {log_path.relative_to(PROJECT_ROOT)}")

    try:
        pipeline = RidershipPipeline(base_dir=PROJECT_ROOT)

        if args.rebuild_snapshot:
            removed = pipeline.snapshot.invalidate()
            print_step("Removed cached snapshot" if removed else "No cached snapshot to remove")

        print_header("Step 1: Ridership Snapshot")
        if pipeline.snapshot.exists():
            print_step(f"Using cached {pipeline.snapshot.path.relative_to(PROJECT_ROOT)}")
            run_summary.append("cached snapshot")
        else:
            print_step("Building snapshot from raw turnstile data")
            run_summary.append("snapshot rebuild")

        print_header("Step 2: Daily Totals and Case Counts")
        cases = load_case_counts(args.offline_cases) if args.offline_cases else None
        enriched = pipeline.run(cases=cases)
        run_summary.append("enrichment")

        if args.skip_plot:
            print_step("Skipping chart by request (--skip-plot)")
        else:
            print_header("Step 3: Chart")
            chart = plot_ridership_vs_cases(enriched, pipeline.results_dir / "ridership_vs_cases.png")
            print_step(f"Saved {chart.relative_to(PROJECT_ROOT)}")
            run_summary.append("chart")

        elapsed = time.monotonic() - started
        minutes, seconds = divmod(int(elapsed), 60)

        print_header("Pipeline Completed Successfully")
        print(f"Completed at: {datetime.now().isoformat(timespec='seconds')}")
        print(f"Total time: {minutes} minute(s) {seconds} second(s)")
        print("Ran: " + ", ".join(run_summary))
        return 0

    except (FileNotFoundError, ValueError, RuntimeError) as exc:
        print_error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
