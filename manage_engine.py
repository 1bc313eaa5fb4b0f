#!/usr/bin/env python3
"""
Offline maintenance script for the content trust engine:
- extract-vectors: (re)compute content vectors for the catalog
- update-profiles: fold new interactions into user profiles
- refresh-baseline: recompute the population action-rate baseline
- batch-recommend: generate recommendation lists in chunks
- metrics: compute and print the quality report

All commands share the engine data directory and configuration used by the
web application.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from config_manager import ConfigManager
from recommendation_service import (
    Engine,
    EngineError,
    build_engine,
    setup_logging,
    stop_logging,
)
from recommendation_service.metrics import export_reports, format_report, format_source_comparison

logger = logging.getLogger(__name__)


class EngineMaintenance:
    """Runs the offline engine jobs."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def extract_vectors(self, force: bool = False) -> dict:
        """Extract vectors for every item whose vector is missing or stale."""
        result = self.engine.catalog.refresh_vectors(force=force)
        summary = result.summary()
        logger.info(f"Vector extraction: {summary}")
        if result.failed_ids:
            logger.warning(f"Failed items: {', '.join(result.failed_ids)}")
        return summary

    def update_profiles(self) -> int:
        """Update profiles of users with interactions newer than their watermark."""
        updated = self.engine.profiles.update_all_profiles()
        logger.info(f"Updated {updated} profiles")
        return updated

    def refresh_baseline(self) -> dict:
        baseline = self.engine.baseline.refresh()
        logger.info(
            f"Baseline: mean={baseline.mean_rate:.3f} std={baseline.std_rate:.3f} "
            f"samples={baseline.sample_size} default={baseline.is_default}"
        )
        return baseline.model_dump(mode="json")

    def batch_recommend(
        self,
        user_ids: Optional[List[str]] = None,
        all_active: bool = False,
        limit: Optional[int] = None,
        k: Optional[int] = None,
        inline: bool = False,
    ) -> dict:
        """Generate recommendations in chunks and summarize the per-chunk outcome."""
        jobs = self.engine.batch.submit(
            user_ids=user_ids,
            k=k,
            all_active=all_active,
            limit=limit,
            inline=inline,
            wait=True,
            show_progress=True,
        )
        summary = {
            "batch_id": jobs[0].batch_id if jobs else None,
            "chunks": len(jobs),
            "users": sum(len(job.user_ids) for job in jobs),
            "completed_users": sum(job.completed_users for job in jobs),
            "failed_chunks": [job.job_id for job in jobs if job.failure_count or job.error],
        }
        logger.info(f"Batch summary: {summary}")
        return summary

    def metrics(
        self,
        k: Optional[int] = None,
        days: Optional[float] = None,
        by_source: bool = False,
        export: Optional[Path] = None,
    ) -> str:
        """Compute the metrics report and return it formatted for the console."""
        service = self.engine.metrics
        window = service.window_for_days(days)
        report = service.get_report(k, window, use_cache=False)
        output = format_report(report)
        reports = {"all": report}

        if by_source:
            per_source = service.get_reports_by_source(k, window, use_cache=False)
            output += "\n\n" + format_source_comparison(per_source)
            reports.update({source.value: r for source, r in per_source.items()})

        if export:
            path = export_reports(export, reports)
            logger.info(f"Exported metrics to {path}")
        return output


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Content trust engine maintenance script")
    parser.add_argument("--config", type=Path, default=Path("engine_config.json"),
                        help="Configuration file (default: engine_config.json)")
    parser.add_argument("--data-dir", type=Path,
                        help="Engine data directory (overrides configuration)")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--log-file", type=Path,
                        help="Also write logs to this rotating file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract-vectors", help="Compute content vectors")
    extract.add_argument("--force", action="store_true",
                         help="Recompute every vector, even fresh ones")

    subparsers.add_parser("update-profiles", help="Update dirty user profiles")
    subparsers.add_parser("refresh-baseline", help="Recompute the population baseline")

    batch = subparsers.add_parser("batch-recommend", help="Generate recommendations in batch")
    target = batch.add_mutually_exclusive_group(required=True)
    target.add_argument("--users", nargs="+", help="Explicit user ids")
    target.add_argument("--all-active", action="store_true",
                        help="All recently active users")
    batch.add_argument("--limit", type=int, help="Cap on the number of users")
    batch.add_argument("--k", type=int, help="List length")
    batch.add_argument("--inline", action="store_true",
                       help="Run chunks sequentially instead of on the worker pool")

    metrics = subparsers.add_parser("metrics", help="Print the metrics report")
    metrics.add_argument("--k", type=int, help="Cut-off rank")
    metrics.add_argument("--days", type=float, help="Window length in days")
    metrics.add_argument("--by-source", action="store_true",
                         help="Also compare recommendation sources")
    metrics.add_argument("--export", type=Path, help="Write the reports as JSON")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug, args.log_file)

    try:
        config_manager = ConfigManager(str(args.config))
        data_dir = args.data_dir or Path(config_manager.get_paths_config().data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)
        engine = build_engine(
            config_manager.get_engine_config(),
            data_dir,
            admin_user_ids=config_manager.get_app_config().admin_user_ids,
        )
        maintenance = EngineMaintenance(engine)

        try:
            if args.command == "extract-vectors":
                print(json.dumps(maintenance.extract_vectors(args.force), indent=2))
            elif args.command == "update-profiles":
                print(f"Updated {maintenance.update_profiles()} profiles")
            elif args.command == "refresh-baseline":
                print(json.dumps(maintenance.refresh_baseline(), indent=2))
            elif args.command == "batch-recommend":
                summary = maintenance.batch_recommend(
                    user_ids=args.users,
                    all_active=args.all_active,
                    limit=args.limit,
                    k=args.k,
                    inline=args.inline,
                )
                print(json.dumps(summary, indent=2))
                if summary["failed_chunks"]:
                    return 1
            elif args.command == "metrics":
                print(maintenance.metrics(args.k, args.days, args.by_source, args.export))
        finally:
            engine.shutdown()
    except EngineError as exc:
        logger.error(f"{args.command} failed: {exc}")
        return 2
    finally:
        stop_logging()
    return 0


if __name__ == "__main__":
    sys.exit(main())
