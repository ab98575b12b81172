"""
Purpose: Command-line entry point for the mention monitor.
Constraints: Argument parsing and process lifecycle only; the pipeline lives in orchestration.
"""

# Imports
import argparse
import json
import os
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from mention_monitor.core.config import ConfigManager
from mention_monitor.core.errors import ConfigError
from mention_monitor.core.logging import setup_logger
from mention_monitor.core.metrics import get_metrics
from mention_monitor.orchestration.bootstrap import build_pipeline
from mention_monitor.orchestration.polling import RunState


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Monitor Reddit for brand mentions and alert on new ones.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run a single pipeline pass and exit (default)")
    mode.add_argument("--loop", action="store_true", help="Run on a fixed interval until interrupted")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between runs in --loop mode (default: pipeline.poll_interval_seconds)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=os.getenv("DRY_RUN", "").strip().lower() in ("1", "true", "yes"),
        help="Use an in-memory store and log alerts instead of delivering them",
    )
    parser.add_argument(
        "--config-dir",
        default=os.getenv("MONITOR_CONFIG_DIR", ""),
        help="Directory holding settings.json, brands.json and credentials.env (default: ./config)",
    )
    parser.add_argument("--brands", default="", help="Brand configuration JSON (overrides pipeline.brands_path)")
    parser.add_argument("--db", default="", help="SQLite mention store path (overrides pipeline.store_path)")
    parser.add_argument("--max-runs", type=int, default=None, help="Stop --loop mode after this many runs")
    parser.add_argument("--show-config", action="store_true", help="Print the masked configuration and exit")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = setup_logger("mention_monitor")

    config = ConfigManager(Path(args.config_dir) if args.config_dir else None).load_all()
    overrides = {}
    if args.brands:
        overrides["brands_path"] = args.brands
    if args.db:
        overrides["store_path"] = args.db
    if overrides:
        config.pipeline = config.pipeline.model_copy(update=overrides)

    if args.show_config:
        print(json.dumps(config.summary(), indent=2, default=str))
        return 0

    try:
        pipeline = build_pipeline(config, dry_run=args.dry_run)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    stop_event = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("Received signal %s; stopping after the current run", signum)
        stop_event.set()

    try:
        if args.loop:
            signal.signal(signal.SIGINT, _handle_signal)
            signal.signal(signal.SIGTERM, _handle_signal)
            runs = pipeline.orchestrator.run_forever(args.interval, stop_event, args.max_runs)
            logger.info("Stopped after %s runs", runs)
            return 0
        summary = pipeline.orchestrator.run_once()
        print(json.dumps(summary.as_dict(), indent=2, default=str))
        return 0 if summary.state != RunState.ERROR else 1
    finally:
        pipeline.close()
        metrics_path = os.getenv("METRICS_SNAPSHOT_PATH", "").strip()
        if metrics_path:
            get_metrics().write_snapshot(Path(metrics_path))


if __name__ == "__main__":
    sys.exit(main())
