#!/usr/bin/env python3
"""
BootSleuth - Windows boot and upgrade failure diagnosis
Reads boot/setup evidence, maps status codes to a boot stage, and proposes (or applies) a repair plan.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

# Configure logging
logging.basicConfig(
    level=getattr(logging, (os.getenv("BOOTSLEUTH_LOG_LEVEL") or "INFO").strip().upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

logger = logging.getLogger("bootsleuth")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_DEGRADED = 2

#
# NOTE: Keep bootsleuth imports lazy (inside functions) so `--help` stays fast and never touches psutil/winreg.
#


def ask_confirmation(blocker) -> bool:
    """Interactive gate for Repair mode: one yes/no prompt per blocker."""
    print(f"\nBlocker: {blocker.blocker_type} ({blocker.severity})", file=sys.stderr)
    print(f"  {blocker.remediation.title}", file=sys.stderr)
    print(f"  {blocker.remediation.command}", file=sys.stderr)
    try:
        answer = input("Clear this blocker? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def write_report_file(path: str, payload) -> None:
    import json

    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=False)
        f.write("\n")


def run_analysis(args, config) -> int:
    import json

    from bootsleuth.core.errors import NoEvidenceSourceReachable
    from bootsleuth.dump import report_to_json_dict
    from bootsleuth.pipeline.orchestrator import AnalysisOrchestrator
    from bootsleuth.report import render_report

    orchestrator = AnalysisOrchestrator(config)
    confirm = ask_confirmation if args.mode == "repair" else None
    try:
        report = orchestrator.run(mode=args.mode, drive=args.drive, confirm=confirm)
    except NoEvidenceSourceReachable as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED

    if args.report_file:
        try:
            write_report_file(args.report_file, report_to_json_dict(report, mode="report"))
        except OSError as e:
            logger.error("Could not write report file %s: %s", args.report_file, e)
            return EXIT_FAILED
        logger.info("Report written to %s", args.report_file)

    # Optional JSON dump: emit ONLY JSON on stdout so `> file.json` is valid JSON.
    if args.dump_json:
        print(json.dumps(report_to_json_dict(report, mode=args.dump_json), indent=2, sort_keys=False))
    else:
        print(render_report(report))

    return EXIT_DEGRADED if report.status == "degraded" else EXIT_OK


def run_monitor(args, config) -> int:
    import json

    from bootsleuth.pipeline.orchestrator import AnalysisOrchestrator

    orchestrator = AnalysisOrchestrator(config)
    monitor, path, gaps = orchestrator.monitor(drive=args.drive)
    for g in gaps:
        logger.warning("%s: %s: %s", g.kind, g.source, g.detail)

    print(f"Watching {path} (Ctrl-C to stop)", file=sys.stderr)
    stream = monitor.start(path, config.monitor_timeout_seconds, config.poll_interval_seconds)
    alerts = 0
    try:
        for alert in stream:
            alerts += 1
            if args.dump_json:
                print(json.dumps(alert.model_dump(mode="json"), sort_keys=False), flush=True)
            else:
                print(f"[{alert.severity}] {alert.code} ({alert.stage}): {alert.recommended_action}", flush=True)
    except KeyboardInterrupt:
        monitor.stop()
        stream.close()

    print(f"Monitor finished: {monitor.last_outcome or 'Cancelled'} ({alerts} alert(s))", file=sys.stderr)
    return EXIT_DEGRADED if (gaps or monitor.gaps) else EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Diagnose Windows boot and upgrade failures from on-disk evidence",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Read-only diagnosis of the auto-detected offline Windows partition
  python main.py

  # Diagnosis plus a repair plan for review, against D:
  python main.py --mode full --drive D

  # Clear confirmed registry blockers, then plan repairs
  python main.py --mode repair

  # Watch setupact.log during an in-place upgrade
  python main.py --mode monitor --timeout 3600
        """,
    )
    parser.add_argument(
        "--mode",
        choices=["analyze", "full", "repair", "monitor"],
        default="analyze",
        help="analyze: diagnose only; full: + repair plan; repair: + clear confirmed blockers; monitor: watch setup log (default: analyze)",
    )
    parser.add_argument("--drive", metavar="X", help="Windows partition override (e.g., D, D: or D:\\)")
    parser.add_argument(
        "--dump-json",
        nargs="?",
        const="analysis",
        choices=["analysis", "report"],
        help="Print JSON to stdout instead of the markdown report (default: analysis). Use `report` for the full sealed report.",
    )
    parser.add_argument("--report-file", metavar="PATH", help="Also write the full JSON report to PATH")
    parser.add_argument("--knowledge-base", metavar="PATH", help="Alternate error-code table (YAML)")
    parser.add_argument("--timeout", type=float, help="Monitor timeout in seconds (default: 1800)")
    parser.add_argument("--poll-interval", type=float, help="Monitor poll interval in seconds (default: 2)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    from dataclasses import replace

    from bootsleuth.config import load_engine_config
    from bootsleuth.core.errors import KnowledgeBaseError

    args = build_parser().parse_args(argv)

    config = load_engine_config()
    overrides = {}
    if args.knowledge_base:
        overrides["knowledge_base_path"] = args.knowledge_base
    if args.timeout is not None:
        overrides["monitor_timeout_seconds"] = max(1.0, args.timeout)
    if args.poll_interval is not None:
        overrides["poll_interval_seconds"] = max(0.1, min(args.poll_interval, 60.0))
    if overrides:
        config = replace(config, **overrides)

    try:
        if args.mode == "monitor":
            return run_monitor(args, config)
        return run_analysis(args, config)
    except KnowledgeBaseError as e:
        print(f"Error: invalid knowledge base: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
