"""Command-line interface for the image text search service.

Provides subcommands for running the API server, ingesting a folder of
images, searching stored text, and regenerating or deleting records.
"""

import argparse
import json
import sys
from pathlib import Path

import uvicorn

from ocrsearch.api.app import create_app
from ocrsearch.errors import OCRSearchError
from ocrsearch.processing.pipeline import FileStatus
from ocrsearch.services import Services, build_services
from ocrsearch.utils.config import load_config
from ocrsearch.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = (
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.tiff",
    "*.tif",
    "*.bmp",
    "*.webp",
)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def _find_images(input_dir: Path) -> list[Path]:
    """Find all supported image files in a directory.

    Args:
        input_dir: Directory to scan for images.

    Returns:
        Sorted list of image file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def ingest_folder(
    input_dir: Path, services: Services, verbose: bool = False
) -> dict[str, int]:
    """Copy every image in a folder into storage and process it.

    Args:
        input_dir: Directory containing image files.
        services: Connected service components.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, saved, skipped and failed counts.
    """
    files = _find_images(input_dir)
    summary = {"total": len(files), "saved": 0, "skipped": 0, "failed": 0}
    if not files:
        logger.warning("No images found in %s", input_dir)
        return summary

    logger.info("Found %d images to ingest", len(files))

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        image_ref = services.asset_store.save(file_path.name, file_path.read_bytes())
        outcome = services.pipeline.process_file(file_path.name, image_ref)

        if outcome.status == FileStatus.COMPLETED:
            summary["saved"] += 1
        elif outcome.status == FileStatus.SKIPPED:
            summary["skipped"] += 1
        else:
            summary["failed"] += 1
            if verbose:
                print(f"  failed: {outcome.error.message}")

    _print_summary(summary)
    return summary


def _print_summary(summary: dict[str, int]) -> None:
    """Print ingest summary to stdout.

    Args:
        summary: Counts of total, saved, skipped and failed images.
    """
    print(f"\n{'=' * 50}")
    print("Ingest Complete")
    print(f"{'=' * 50}")
    print(f"Total:   {summary['total']}")
    print(f"Saved:   {summary['saved']}")
    print(f"Skipped: {summary['skipped']}")
    print(f"Failed:  {summary['failed']}")


def search_records(
    services: Services, query: str | None, limit: int | None = None
) -> dict[str, object]:
    """Run a search and return a JSON-ready result."""
    result = services.search.search(query, limit)
    return {
        "query": result.query,
        "count": result.count,
        "results": [
            {
                "id": hit.record.id,
                "image": hit.record.image_ref,
                "text": hit.record.text,
                "matched": hit.matched,
                "createdAt": hit.record.created_at.isoformat(),
            }
            for hit in result.hits
        ],
    }


def _run_command(args: argparse.Namespace, services: Services) -> int:
    if args.command == "ingest":
        summary = ingest_folder(args.input_dir, services, args.verbose)
        return 0 if summary["failed"] == 0 else 1

    if args.command == "search":
        result = search_records(services, args.query, args.limit)
        if args.json:
            print(json.dumps(result, indent=2))
        else:
            for item in result["results"]:
                first_line = item["text"].splitlines()[0] if item["text"] else ""
                print(f"{item['id']}  {item['image']}  {first_line}")
            print(f"{result['count']} result(s)")
        return 0

    if args.command == "regenerate":
        outcome = services.pipeline.regenerate(args.record_id)
        if not outcome.updated:
            print("No text could be extracted from the image", file=sys.stderr)
            return 1
        print(outcome.record.text)
        return 0

    if args.command == "delete":
        record = services.pipeline.delete(args.record_id)
        print(f"Deleted {record.id} ({record.image_ref})")
        return 0

    return 0


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Image Text Search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default from config)")
    serve_parser.add_argument(
        "--port", type=int, help="Listening port (default from config)"
    )

    ingest_parser = subparsers.add_parser("ingest", help="Process a folder of images")
    ingest_parser.add_argument("input_dir", type=Path, help="Directory with images")
    ingest_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    search_parser = subparsers.add_parser("search", help="Search extracted text")
    search_parser.add_argument("query", nargs="?", help="Text to look for")
    search_parser.add_argument(
        "-n",
        "--limit",
        type=_positive_int,
        help="Maximum number of results (max 100)",
    )
    search_parser.add_argument("--json", action="store_true", help="JSON output")

    regen_parser = subparsers.add_parser("regenerate", help="Re-run OCR on a record")
    regen_parser.add_argument("record_id", help="Record ID")

    delete_parser = subparsers.add_parser("delete", help="Delete a record and image")
    delete_parser.add_argument("record_id", help="Record ID")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "serve":
        uvicorn.run(
            create_app(config),
            host=args.host or config.host,
            port=args.port or config.port,
        )
        return

    if args.command == "ingest" and not args.input_dir.is_dir():
        print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
        sys.exit(1)

    services = build_services(config)
    try:
        exit_code = _run_command(args, services)
    except OCRSearchError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        exit_code = 1
    finally:
        services.close()
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
