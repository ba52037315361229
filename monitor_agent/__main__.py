"""CLI entry point for the monitoring engine.

Usage:
    # Start the monitoring API server
    python -m monitor_agent serve
    SCHEDULER_ENABLED=true python -m monitor_agent serve

    # Run one scan cycle and print the result
    python -m monitor_agent scan
    python -m monitor_agent scan --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys


def _cmd_serve(args: argparse.Namespace) -> None:
    """Start the monitoring API server."""
    import uvicorn

    from .api import create_app
    from .settings import get_settings

    settings = get_settings()
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.monitor_host,
        port=settings.monitor_port,
        log_level="info",
    )


def _cmd_scan(args: argparse.Namespace) -> None:
    """Run a single scan cycle against the configured store."""
    from .engine import MonitoringEngine
    from .errors import MonitorError
    from .settings import get_settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    engine = MonitoringEngine.from_settings(get_settings())
    try:
        result = asyncio.run(engine.run_scan())
    except MonitorError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    print(f"Scan finished in {result.elapsed_ms}ms")
    print(f"  New issues:         {result.new_issues}")
    print(f"  Auto-resolved:      {result.auto_resolved}")
    print(f"  Accuracy estimate:  {result.accuracy:.1f}%")
    if result.skipped_findings:
        print(f"  Skipped findings:   {result.skipped_findings}")
    if result.failed_resolutions:
        print(f"  Failed resolutions: {result.failed_resolutions}")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="monitor_agent",
        description="Inventory monitoring: anomaly detection and issue lifecycle",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve
    subparsers.add_parser("serve", help="Start the monitoring API server")

    # scan
    scan_parser = subparsers.add_parser("scan", help="Run one scan cycle now")
    scan_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the cycle result as JSON",
    )

    args = parser.parse_args()

    if args.command == "serve":
        _cmd_serve(args)
    elif args.command == "scan":
        _cmd_scan(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
