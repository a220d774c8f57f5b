#!/usr/bin/env python3
"""Run the analysis refresh pass over the configured data directory.

Memories without a current model verdict (never analyzed, analyzed by the
heuristic fallback, or older than ``NEMOTRON_REFRESH_DAYS``) are sent to the
classifier and the results are written back to their batch files. The
reconciled bucket sizes are printed afterwards.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from memory_garden import config
from memory_garden.dependencies.services import build_analysis_cache, build_services
from memory_garden.storage import JsonFileRepository


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--data-dir", help="Override MEMORY_DATA_DIR")
    parser.add_argument("--uploads-dir", help="Override MEMORY_UPLOADS_DIR")
    parser.add_argument("--force", action="store_true", help="Re-run every memory, not just stale ones")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if args.data_dir:
        os.environ["MEMORY_DATA_DIR"] = args.data_dir
    if args.uploads_dir:
        os.environ["MEMORY_UPLOADS_DIR"] = args.uploads_dir
    config.clear_settings_cache()

    repository = JsonFileRepository(config.get_data_dir(), config.get_uploads_dir())
    services = build_services(repository, build_analysis_cache())
    report = asyncio.run(services.analysis.refresh(force=args.force))

    print(
        f"scanned={report.scanned} analyzed={report.analyzed} "
        f"ai={report.ai} heuristic={report.heuristic} persisted={report.persisted}"
    )
    for cluster in services.clusters.list_clusters():
        print(f"  {cluster.name:<22} {cluster.size:>5} memories  {cluster.total_size:>12} bytes")
    return 0


if __name__ == "__main__":
    sys.exit(main())
