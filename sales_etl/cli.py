#!/usr/bin/env python3
"""
Command line entry point for the sales star-schema pipeline.

    sales-etl load --source-dir ./data
    sales-etl rebuild
    sales-etl purge --retain suppliers_staging
    sales-etl run
    sales-etl status
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from sales_etl.orchestration.data_quality import DataQualityChecker
from sales_etl.orchestration.pipeline import ETLPipeline, PipelineRun
from sales_etl.orchestration.types import JobStatus
from shared.database import DatabaseManager
from shared.logging_config import configure_logging

COMMAND_JOBS = {
    'load': ['load_staging'],
    'rebuild': ['rebuild_warehouse'],
    'purge': ['purge_staging'],
    'run': ['load_staging', 'rebuild_warehouse', 'purge_staging'],
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sales-etl",
        description="Load sales source files and rebuild the star schema"
    )
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", help="Render logs as JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    load = subparsers.add_parser("load", help="Load all staging tables from source files")
    load.add_argument("--source-dir", help="Directory holding the source CSV files")

    rebuild = subparsers.add_parser("rebuild", help="Rebuild all dimension and fact tables")
    rebuild.add_argument("--null-key-policy", choices=["pass_through", "reject"])

    purge = subparsers.add_parser("purge", help="Purge staging tables")
    purge.add_argument("--retain", nargs="*", metavar="TABLE",
                       help="Staging tables to keep (default: STAGING_RETAINED_TABLES)")

    run = subparsers.add_parser("run", help="Load, rebuild and purge in order")
    run.add_argument("--source-dir", help="Directory holding the source CSV files")
    run.add_argument("--null-key-policy", choices=["pass_through", "reject"])
    run.add_argument("--retain", nargs="*", metavar="TABLE",
                     help="Staging tables to keep (default: STAGING_RETAINED_TABLES)")

    subparsers.add_parser("status", help="Show job status and table row counts")

    return parser


def summarize_run(pipeline_run: PipelineRun) -> dict:
    summary = {
        'run_id': pipeline_run.run_id,
        'status': pipeline_run.status.value,
        'jobs_executed': pipeline_run.jobs_executed,
        'jobs_failed': pipeline_run.jobs_failed,
        'jobs_skipped': pipeline_run.jobs_skipped,
        'total_records_processed': pipeline_run.total_records_processed,
        'dropped_order_lines': pipeline_run.dropped_order_lines,
        'error_message': pipeline_run.error_message,
    }
    if pipeline_run.quality_result is not None:
        summary['quality'] = DataQualityChecker().generate_quality_report(pipeline_run.quality_result)
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_output=True if args.json_logs else None)

    db_manager = DatabaseManager(args.database_url)
    try:
        pipeline = ETLPipeline(
            db_manager,
            source_dir=getattr(args, 'source_dir', None),
            null_key_policy=getattr(args, 'null_key_policy', None),
            retained_tables=getattr(args, 'retain', None)
        )

        if args.command == "status":
            print(json.dumps(pipeline.get_pipeline_status(), indent=2, default=str))
            return 0

        pipeline_run = asyncio.run(pipeline.execute_pipeline(COMMAND_JOBS[args.command]))
        print(json.dumps(summarize_run(pipeline_run), indent=2, default=str))

        return 0 if pipeline_run.status == JobStatus.SUCCESS else 1
    finally:
        db_manager.dispose()


if __name__ == "__main__":
    sys.exit(main())
