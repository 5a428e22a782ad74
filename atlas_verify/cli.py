"""Command-line interface for document verification runs.

Provides subcommands to analyse document images for an applicant, to
extract fields or the MRZ from already recognised text, and to inspect
or validate eligibility policies.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from atlas_verify.extraction.hybrid import HybridExtractor
from atlas_verify.models import ApplicantProfile, RawText
from atlas_verify.mrz.parser import parse_mrz
from atlas_verify.orchestration.pipeline import process_raw_text
from atlas_verify.orchestration.runner import AnalysisOutcome, AnalysisRunner
from atlas_verify.orchestration.state_machine import DocumentTask, TransitionEvent
from atlas_verify.policy.loader import (
    PolicyLoadResult,
    dump_policy,
    load_policy_file,
    parse_policy,
)
from atlas_verify.utils.config import load_config
from atlas_verify.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".tif", ".tiff"}

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_NO_REPORT = 2


def _emit(payload: dict[str, Any], output: Path | None) -> None:
    """Write JSON to ``output`` or print it to stdout."""
    output_str = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str, encoding="utf-8")
        print(f"Output written to {output}")
    else:
        print(output_str)


def _print_event(event: TransitionEvent) -> None:
    suffix = f" ({event.message})" if event.message else ""
    print(f"[{event.current}] {event.name}{suffix}", file=sys.stderr)


def _applicant_from_args(args: argparse.Namespace) -> ApplicantProfile:
    return ApplicantProfile.create(
        surname=args.surname,
        given_names=args.given_names,
        date_of_birth=args.dob,
        nationality=args.nationality,
        passport_number=args.passport_number,
        visa_type=args.visa_type,
    )


def _load_policy(args: argparse.Namespace, default_path: str) -> PolicyLoadResult:
    if args.policy:
        return load_policy_file(args.policy)
    default = Path(default_path)
    if default.exists():
        return load_policy_file(default)
    return parse_policy(None)


def run_analysis(args: argparse.Namespace) -> AnalysisOutcome:
    """Analyse the given document images for one applicant.

    Args:
        args: Parsed ``analyze`` arguments.

    Returns:
        Outcome of the run, with ``report`` set when any document succeeded.
    """
    config = load_config(args.config)
    runner = AnalysisRunner(config)
    tasks = [DocumentTask.create(path.name, path) for path in args.files]
    return asyncio.run(
        runner.run(
            tasks,
            _applicant_from_args(args),
            policy=_load_policy(args, config.policy.policy_path),
            on_event=_print_event if args.verbose else None,
        )
    )


def _cmd_analyze(args: argparse.Namespace) -> int:
    missing = [p for p in args.files if not p.exists()]
    if missing:
        print(f"Error: {missing[0]} does not exist", file=sys.stderr)
        return EXIT_USAGE
    unsupported = [p for p in args.files if p.suffix.lower() not in _SUPPORTED_EXTENSIONS]
    if unsupported:
        print(f"Error: unsupported file type {unsupported[0].suffix}", file=sys.stderr)
        return EXIT_USAGE

    outcome = run_analysis(args)
    if outcome.policy.notice:
        print(f"Warning: {outcome.policy.notice}", file=sys.stderr)
    _emit(outcome.to_dict(), args.output)
    if not outcome.success:
        print(f"Error: {outcome.message}", file=sys.stderr)
        return EXIT_NO_REPORT
    return EXIT_OK


def _read_text(path: Path) -> str | None:
    if not path.exists():
        print(f"Error: {path} does not exist", file=sys.stderr)
        return None
    return path.read_text(encoding="utf-8")


def _cmd_extract(args: argparse.Namespace) -> int:
    text = _read_text(args.file)
    if text is None:
        return EXIT_USAGE
    config = load_config(args.config)
    extraction = process_raw_text(
        args.file.stem,
        RawText(text, args.ocr_confidence),
        HybridExtractor(config.extraction),
    )
    _emit(extraction.to_dict(), args.output)
    return EXIT_OK


def _cmd_mrz(args: argparse.Namespace) -> int:
    text = _read_text(args.file)
    if text is None:
        return EXIT_USAGE
    record = parse_mrz(text)
    payload = {"found": record is not None, "record": record.to_dict() if record else None}
    _emit(payload, args.output)
    return EXIT_OK


def _cmd_policy(args: argparse.Namespace) -> int:
    if args.check is None:
        print(dump_policy())
        return EXIT_OK
    loaded = load_policy_file(args.check)
    if loaded.substituted:
        print(f"Invalid policy: {loaded.reason}", file=sys.stderr)
        return EXIT_USAGE
    print(f"Policy OK: {len(loaded.policy.visa_types)} visa types")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Atlas Verify travel document checker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, default=None, help="Config YAML file")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze = subparsers.add_parser("analyze", help="Analyse document images")
    analyze.add_argument("files", type=Path, nargs="+", help="Document images")
    analyze.add_argument("--surname", default="", help="Declared surname")
    analyze.add_argument("--given-names", default="", help="Declared given names")
    analyze.add_argument("--dob", default="", help="Declared date of birth (YYYY-MM-DD)")
    analyze.add_argument("--nationality", default="", help="Declared nationality (ICAO alpha-3)")
    analyze.add_argument("--passport-number", default="", help="Declared passport number")
    analyze.add_argument(
        "--visa-type", default="tourist", help="Requested visa type (default: tourist)"
    )
    analyze.add_argument("--policy", type=Path, default=None, help="Policy YAML/JSON file")
    analyze.add_argument("-o", "--output", type=Path, help="Output JSON file")
    analyze.add_argument("-v", "--verbose", action="store_true", help="Print progress")

    extract = subparsers.add_parser("extract", help="Extract fields from OCR text")
    extract.add_argument("file", type=Path, help="Text file with OCR output")
    extract.add_argument(
        "--ocr-confidence", type=int, default=100, help="OCR confidence 0-100 (default: 100)"
    )
    extract.add_argument("-o", "--output", type=Path, help="Output JSON file")

    mrz = subparsers.add_parser("mrz", help="Parse the MRZ from OCR text")
    mrz.add_argument("file", type=Path, help="Text file with OCR output")
    mrz.add_argument("-o", "--output", type=Path, help="Output JSON file")

    policy = subparsers.add_parser("policy", help="Show or validate a policy")
    policy.add_argument("--check", type=Path, default=None, help="Policy file to validate")

    return parser


_COMMANDS = {
    "analyze": _cmd_analyze,
    "extract": _cmd_extract,
    "mrz": _cmd_mrz,
    "policy": _cmd_policy,
}


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging()

    handler = _COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(0)
    sys.exit(handler(args))


if __name__ == "__main__":
    main()
