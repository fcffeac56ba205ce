from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .checks import check_integrity, count_section_breaks
from .combine import combine_docx
from .config import CombineConfig, CombineOptions, load_config
from .errors import CombineError
from .logging_utils import setup_logging
from .models import Severity
from .package import Package

_METADATA_FLAGS = (
    ("--title", "title"),
    ("--subject", "subject"),
    ("--author", "author"),
    ("--keywords", "keywords"),
    ("--description", "description"),
    ("--last-modified-by", "last_modified_by"),
    ("--vision", "vision"),
)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="docxcombine", description="Merge several DOCX files into one document.")
    sub = p.add_subparsers(dest="cmd", required=True)

    m = sub.add_parser("merge", help="Concatenate DOCX files in the given order.")
    m.add_argument("inputs", nargs="+", help="Input .docx files; the first one supplies page setup and defaults.")
    m.add_argument("--output", "-o", required=True, help="Path to output .docx")
    m.add_argument("--config", "-c", default=None, help="Optional YAML config")
    m.add_argument(
        "--no-page-break",
        action="store_true",
        help="Do not insert a page break where one document ends and the next begins.",
    )
    for flag, dest in _METADATA_FLAGS:
        m.add_argument(flag, dest=dest, default=None, help=f"Set the merged document's {dest.replace('_', ' ')}.")
    m.add_argument("--log", default=None, help="Override log path.")
    m.add_argument("--verbose", "-v", action="store_true", help="Log per-package mapping details.")

    v = sub.add_parser("verify", help="Check ids and references of a merged DOCX.")
    v.add_argument("file", help="Path to .docx")
    v.add_argument("--report", default=None, help="Optional JSON report path")
    return p


def _merge_config(args: argparse.Namespace) -> CombineConfig:
    cfg = load_config(args.config) if args.config else CombineConfig()

    # CLI overrides
    overrides = {dest: getattr(args, dest) for _, dest in _METADATA_FLAGS if getattr(args, dest) is not None}
    if args.no_page_break:
        overrides["page_break"] = False
    if overrides:
        options = CombineOptions(**{**cfg.options.__dict__, **overrides})
        cfg = cfg.__class__(**{**cfg.__dict__, "options": options})
    if args.log is not None:
        cfg = cfg.__class__(**{**cfg.__dict__, "log_path": str(args.log)})
    return cfg


def _run_merge(args: argparse.Namespace) -> int:
    try:
        cfg = _merge_config(args)
    except CombineError as exc:
        print(f"Invalid options: {exc}", file=sys.stderr)
        return 2
    logger = setup_logging(Path(cfg.log_path) if cfg.log_path else None, verbose=bool(args.verbose))
    logger.info("Inputs: %s", ", ".join(args.inputs))
    try:
        merged = combine_docx([Path(path) for path in args.inputs], cfg.options)
        out = merged.save(args.output)
    except CombineError as exc:
        logger.error("Merge failed: %s", exc)
        return 1
    logger.info("Output: %s", out)
    return 0


def _run_verify(args: argparse.Namespace) -> int:
    try:
        package = Package.open(args.file)
        issues = check_integrity(package)
    except CombineError as exc:
        print(f"Cannot check {args.file}: {exc}", file=sys.stderr)
        return 2
    errors = [issue for issue in issues if issue.severity == Severity.ERROR]

    # Console summary
    print("DOCX integrity check")
    print("Section breaks:", count_section_breaks(package))
    print("Issues:", len(issues), f"(errors: {len(errors)})")
    for issue in issues:
        print(f"  [{issue.severity.value}] {issue.code}: {issue.message} {issue.details}")

    if args.report:
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "file": str(args.file),
            "section_breaks": count_section_breaks(package),
            "issues": [issue.to_dict() for issue in issues],
        }
        report_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        print(f"Report written: {args.report}")
    return 1 if errors else 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.cmd == "merge":
        return _run_merge(args)

    if args.cmd == "verify":
        return _run_verify(args)

    print(f"Unknown command: {args.cmd}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
