# src/main.py — v2
"""CLI entry point: run, status, pages, list, pause, resume, cancel, report.

Usage:
    a11ybatch run <urls-file> [--viewport mobile|desktop] [--name NAME]
    a11ybatch status <batch-id>
    a11ybatch pages <batch-id> [--status STATUS]
    a11ybatch list [--limit N] [--offset N]
    a11ybatch pause|resume|cancel <batch-id>
    a11ybatch report <batch-id> [--format json|html] [-o FILE | --save]

State lives in the configured state store (SQLite by default), so a batch
started by ``run`` in one shell can be paused or cancelled from another.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from a11ybatch.config.settings import ConfigurationError, Settings, load_settings
from a11ybatch.logging.logger import setup_logging_from_settings
from a11ybatch.version import __version__

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_FAILURE

    try:
        settings = load_settings()
    except (ConfigurationError, ValidationError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(_dispatch(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return EXIT_FAILURE


def cli() -> None:
    """Console script entry point."""
    sys.exit(main())


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="a11ybatch",
        description=f"a11ybatch v{__version__} - sequential multi-page accessibility scans",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Create a batch from a URL list and process it",
    )
    p_run.add_argument(
        "urls_file", type=Path,
        help="Text file with one URL per line ('#' starts a comment)",
    )
    p_run.add_argument(
        "--viewport", choices=["mobile", "desktop"], default="desktop",
        help="Device profile (default: desktop)",
    )
    p_run.add_argument("--name", default=None, help="Batch display name")
    p_run.add_argument("--sitemap-url", default=None, help="Sitemap the URLs came from")
    p_run.add_argument("--owner", default=None, help="Owner id (default: DEFAULT_OWNER_ID)")
    p_run.set_defaults(func=_cmd_run)

    # --- status ---
    p_status = subparsers.add_parser("status", help="Show batch status and progress")
    _add_batch_args(p_status)
    p_status.add_argument("--json", action="store_true", help="Print as JSON")
    p_status.set_defaults(func=_cmd_status)

    # --- pages ---
    p_pages = subparsers.add_parser("pages", help="List a batch's pages")
    _add_batch_args(p_pages)
    p_pages.add_argument(
        "--status", default=None,
        choices=["pending", "running", "completed", "failed", "skipped"],
        help="Only pages in this status",
    )
    p_pages.set_defaults(func=_cmd_pages)

    # --- list ---
    p_list = subparsers.add_parser("list", help="List batches, newest first")
    p_list.add_argument("--owner", default=None, help="Owner id (default: DEFAULT_OWNER_ID)")
    p_list.add_argument("--limit", type=int, default=20, help="Page size, max 100 (default: 20)")
    p_list.add_argument("--offset", type=int, default=0, help="Offset (default: 0)")
    p_list.set_defaults(func=_cmd_list)

    # --- control ---
    p_pause = subparsers.add_parser("pause", help="Pause a running batch")
    _add_batch_args(p_pause)
    p_pause.set_defaults(func=_cmd_pause)

    p_resume = subparsers.add_parser(
        "resume", help="Resume a paused batch and process it in the foreground",
    )
    _add_batch_args(p_resume)
    p_resume.set_defaults(func=_cmd_resume)

    p_cancel = subparsers.add_parser("cancel", help="Cancel a batch")
    _add_batch_args(p_cancel)
    p_cancel.set_defaults(func=_cmd_cancel)

    # --- report ---
    p_report = subparsers.add_parser("report", help="Generate a batch report")
    _add_batch_args(p_report)
    p_report.add_argument(
        "--format", dest="fmt", choices=["json", "html"], default="json",
        help="Report format (default: json)",
    )
    report_target = p_report.add_mutually_exclusive_group()
    report_target.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Write to this file instead of stdout",
    )
    report_target.add_argument(
        "--save", action="store_true",
        help="Write to REPORT_OUTPUT_DIR/<batch-id>.<format> instead of stdout",
    )
    p_report.set_defaults(func=_cmd_report)

    return parser


def _add_batch_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("batch_id", help="Batch id")
    parser.add_argument(
        "--owner", default=None,
        help="Only act on the batch if it belongs to this owner",
    )


async def _dispatch(args: argparse.Namespace, settings: Settings) -> int:
    from a11ybatch.api.facade import BatchService

    service = BatchService(settings)
    try:
        return await args.func(args, service)
    finally:
        await service.close()


async def _cmd_run(args: argparse.Namespace, service) -> int:
    """Create a batch and process it in the foreground."""
    from a11ybatch.api.facade import BatchValidationError

    urls_file: Path = args.urls_file
    if not urls_file.is_file():
        logger.error("File not found: %s", urls_file)
        return EXIT_FAILURE

    try:
        batch = await service.create_batch(
            read_url_file(urls_file),
            viewport=args.viewport,
            name=args.name,
            sitemap_url=args.sitemap_url,
            owner_id=args.owner,
            start=False,
        )
    except BatchValidationError as exc:
        logger.error("Invalid batch: %s", exc)
        return EXIT_FAILURE

    print(f"Batch {batch.id} created with {batch.total_pages} pages")
    try:
        status = await service.run_batch(batch.id)
    except asyncio.CancelledError:
        # asyncio.run cancels the main task on Ctrl-C (Python 3.11+).
        # Leave the batch resumable rather than stuck in running.
        await service.pause_batch(batch.id)
        raise
    return await _print_final(service, batch.id, status)


async def _cmd_status(args: argparse.Namespace, service) -> int:
    details = await service.get_batch(args.batch_id, owner_id=args.owner)
    if details is None:
        logger.error("Batch not found: %s", args.batch_id)
        return EXIT_FAILURE
    if args.json:
        print(details.model_dump_json(by_alias=True, indent=2))
        return EXIT_OK

    batch, progress = details.batch, details.progress
    print(f"\nBatch {batch.id}" + (f" ({batch.name})" if batch.name else ""))
    print(f"  Status:      {batch.status}")
    print(f"  Viewport:    {batch.viewport}")
    print(f"  Progress:    {progress.completed_pages + progress.failed_pages}/"
          f"{progress.total_pages} ({progress.percent_complete:.0f}%)")
    print(f"  Completed:   {progress.completed_pages}")
    print(f"  Failed:      {progress.failed_pages}")
    print(f"  Violations:  {progress.total_violations}")
    print(f"  ETA:         {progress.estimated_time_remaining}s")
    return EXIT_OK


async def _cmd_pages(args: argparse.Namespace, service) -> int:
    view = await service.list_pages(args.batch_id, owner_id=args.owner, status=args.status)
    if view is None:
        logger.error("Batch not found: %s", args.batch_id)
        return EXIT_FAILURE
    for page in view.pages:
        detail = page.error_message if page.status == "failed" else str(page.violation_count)
        print(f"{page.position + 1:>4}  {page.status:<10} {detail:<12} {page.url}")
    return EXIT_OK


async def _cmd_list(args: argparse.Namespace, service) -> int:
    listing = await service.list_batches(args.owner, limit=args.limit, offset=args.offset)
    for batch in listing.items:
        print(
            f"{batch.id}  {batch.status:<10} {batch.processed_pages:>4}/{batch.total_pages:<4} "
            f"{batch.created_at:%Y-%m-%d %H:%M}  {batch.name or ''}"
        )
    more = " (more available)" if listing.has_more else ""
    print(f"\n{len(listing.items)} of {listing.total} batches{more}")
    return EXIT_OK


async def _cmd_pause(args: argparse.Namespace, service) -> int:
    return _print_control(await service.pause_batch(args.batch_id, owner_id=args.owner))


async def _cmd_resume(args: argparse.Namespace, service) -> int:
    result = await service.resume_batch(args.batch_id, owner_id=args.owner)
    if not result.success:
        return _print_control(result)
    print(result.message)
    await service.wait(args.batch_id)
    details = await service.get_batch(args.batch_id)
    status = details.batch.status if details else None
    return await _print_final(service, args.batch_id, status)


async def _cmd_cancel(args: argparse.Namespace, service) -> int:
    return _print_control(await service.cancel_batch(args.batch_id, owner_id=args.owner))


async def _cmd_report(args: argparse.Namespace, service) -> int:
    from a11ybatch.report.exporter import export_report_html, export_report_json, write_report

    report = await service.get_report(args.batch_id, format="json", owner_id=args.owner)
    if report is None:
        logger.error("Batch not found: %s", args.batch_id)
        return EXIT_FAILURE

    top = service.settings.report_top_recommendations_html
    output = args.output
    if args.save:
        output = service.settings.report_output_dir / f"{args.batch_id}.{args.fmt}"

    if output is not None:
        path = write_report(report, output, fmt=args.fmt, top_recommendations=top)
        print(f"Report written to {path}")
    elif args.fmt == "html":
        print(export_report_html(report, top_recommendations=top))
    else:
        print(export_report_json(report))
    return EXIT_OK


async def _print_final(service, batch_id: str, status: str | None) -> int:
    details = await service.get_batch(batch_id)
    if details is None or status is None:
        logger.error("Batch not found: %s", batch_id)
        return EXIT_FAILURE
    batch = details.batch
    print(f"\nBatch {batch.id} {status}:")
    print(f"  Pages:       {batch.total_pages}")
    print(f"  Completed:   {batch.completed_pages}")
    print(f"  Failed:      {batch.failed_pages}")
    print(f"  Violations:  {batch.total_violations}")
    return EXIT_OK if status in ("completed", "paused") else EXIT_FAILURE


def _print_control(result) -> int:
    if result.success:
        print(result.message)
        return EXIT_OK
    print(f"Error ({result.code}): {result.message}", file=sys.stderr)
    return EXIT_FAILURE


def read_url_file(path: Path) -> list[str]:
    """URLs from a text file: one per line, blank lines and '#' comments ignored."""
    urls: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    setup_logging_from_settings(settings, level="DEBUG" if verbose else None)
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
