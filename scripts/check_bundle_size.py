#!/usr/bin/env python3
"""
Check bundle sizes of a build output directory against budgets.

Exit codes: 0 when every budget is met, 1 on any budget error or analysis
failure, 2 when only warning thresholds were reached.

Usage:
  python scripts/check_bundle_size.py dist --save --branch main --commit abc123

Environment:
  PERF_AUDIT_DATABASE_URL  store used with --save
  BUNDLE_OUTPUT_PATH       default output directory (dist)
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys

from perf_audit.config import settings
from perf_audit.errors import PerfAuditError
from perf_audit.logging_config import setup_logging
from perf_audit.schemas.audit import AuditResult
from perf_audit.schemas.budget import AnalyzeOptions, BudgetConfig
from perf_audit.services.audit import run_bundle_audit
from perf_audit.services.build_store import BuildStore
from perf_audit.services.bundle_analyzer import BundleAnalyzer
from perf_audit.utils.size import format_size

EXIT_CODES = {"ok": 0, "error": 1, "warning": 2}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("output_path", nargs="?", default=os.getenv("BUNDLE_OUTPUT_PATH", "dist"))
    parser.add_argument("--server", action="store_true", help="use server-side default budgets")
    parser.add_argument("--no-gzip", action="store_true", help="skip compressed size measurement")
    parser.add_argument("--ignore", action="append", default=None, help="extra ignore glob")
    parser.add_argument("--save", action="store_true", help="record the result in the build store")
    parser.add_argument("--branch")
    parser.add_argument("--commit")
    return parser.parse_args(argv)


def report(result: AuditResult) -> None:
    for bundle in result.bundles:
        gzip = f" (gzip {format_size(bundle.gzip_size)})" if bundle.gzip_size is not None else ""
        print(f"[{bundle.status.upper():7}] {bundle.name}: {format_size(bundle.size)}{gzip}")
    print(f"Total: {format_size(result.total_size)} [{result.total_status}]")
    for message in result.recommendations:
        print(f"- {message}")


async def save(result: AuditResult, args: argparse.Namespace) -> int:
    async with BuildStore.open(settings.database_url) as store:
        return await store.save_build(
            result.to_new_build(branch=args.branch, commit_hash=args.commit)
        )


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = parse_args(argv)

    options = AnalyzeOptions(
        output_path=args.output_path,
        gzip=not args.no_gzip,
        bundle_type="server" if args.server else "client",
    )
    if args.ignore:
        options = options.model_copy(update={"ignore_paths": [*options.ignore_paths, *args.ignore]})
    budgets = BudgetConfig.server_defaults() if args.server else BudgetConfig.client_defaults()

    try:
        result = run_bundle_audit(BundleAnalyzer(options, gzip_level=settings.gzip_level), budgets)
    except PerfAuditError as exc:
        print(f"Bundle analysis failed: {exc}", file=sys.stderr)
        return 1

    if not result.bundles:
        print(f"No bundles found under {args.output_path}")
    report(result)

    if args.save:
        try:
            build_id = asyncio.run(save(result, args))
        except PerfAuditError as exc:
            print(f"Could not save build: {exc}", file=sys.stderr)
            return 1
        print(f"Saved as build {build_id}")

    return EXIT_CODES[result.budget_status]


if __name__ == "__main__":
    sys.exit(main())
