#!/usr/bin/env python3
"""Replay a HAR capture through the synthesis engine.

Reads recorded traffic, folds every entry into a fresh TrafficStore and
writes the resulting OpenAPI document plus the normalised archive.

Usage:
    trafficscribe-replay capture.har                      # Write to ./openapi
    trafficscribe-replay capture.har --output-dir out     # Custom output dir
    trafficscribe-replay capture.har --target https://x   # Override server URL
    trafficscribe-replay capture.har --validate           # Validate the result
"""

import argparse
import base64
import binascii
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from openapi_spec_validator import validate
from openapi_spec_validator.validation.exceptions import OpenAPIValidationError
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .config import DEFAULT_CONFIG_PATH, load_config
from .exchange import ObservedExchange
from .store import TrafficStore

console = Console()
logger = logging.getLogger(__name__)


def _headers(items: list[dict[str, Any]]) -> dict[str, str]:
    return {str(h.get("name", "")): str(h.get("value", "")) for h in items if h.get("name")}


def _parse_started(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable startedDateTime %r, using now", value)
        return datetime.now(timezone.utc)


def _response_body(content: dict[str, Any]) -> str | bytes | None:
    text = content.get("text")
    if not text:
        return None
    if content.get("encoding") == "base64":
        try:
            return base64.b64decode(text)
        except (binascii.Error, ValueError):
            logger.warning("Invalid base64 response content, keeping text")
    return text


def exchange_from_har_entry(entry: dict[str, Any]) -> ObservedExchange:
    """Convert one HAR entry into an ObservedExchange."""
    request = entry.get("request", {})
    response = entry.get("response", {})
    content = response.get("content", {})
    post_data = request.get("postData") or {}

    url = urlsplit(request.get("url", "/"))
    query = {q.get("name", ""): q.get("value", "") for q in request.get("queryString", [])}
    if not query and url.query:
        query = dict(parse_qsl(url.query, keep_blank_values=True))

    return ObservedExchange(
        method=request.get("method", "GET"),
        path=url.path or "/",
        status=int(response.get("status", 200) or 200),
        query=query,
        request_headers=_headers(request.get("headers", [])),
        request_body=post_data.get("text") or None,
        request_content_type=post_data.get("mimeType"),
        response_headers=_headers(response.get("headers", [])),
        response_body=_response_body(content),
        response_content_type=content.get("mimeType"),
        started_at=_parse_started(entry.get("startedDateTime")),
        duration_ms=float(entry.get("time", 0) or 0),
        http_version=request.get("httpVersion", "HTTP/1.1") or "HTTP/1.1",
    )


def load_har(har_path: Path) -> list[dict[str, Any]]:
    """Load the entries of a HAR file.

    Raises:
        ValueError: if the file is not JSON or has no HAR log structure
    """
    with har_path.open(encoding="utf-8") as f:
        data = json.load(f)

    log = data.get("log") if isinstance(data, dict) else None
    if not isinstance(log, dict):
        raise ValueError("not a HAR file: missing top-level log object")

    entries = log.get("entries", [])
    if not isinstance(entries, list):
        raise ValueError("not a HAR file: log.entries is not a list")

    skipped = sum(1 for entry in entries if not isinstance(entry, dict))
    if skipped:
        logger.warning("Ignoring %d malformed HAR entries", skipped)
    return [entry for entry in entries if isinstance(entry, dict)]


def infer_target(entries: list[dict[str, Any]]) -> str | None:
    """Scheme and host of the first entry with an absolute URL."""
    for entry in entries:
        url = urlsplit(entry.get("request", {}).get("url", ""))
        if url.scheme and url.netloc:
            return f"{url.scheme}://{url.netloc}"
    return None


def validate_document(document: dict[str, Any]) -> tuple[bool, str | None]:
    """Validate a generated OpenAPI document."""
    try:
        validate(document)
        return True, None
    except OpenAPIValidationError as e:
        return False, str(e)


def replay(store: TrafficStore, entries: list[dict[str, Any]]) -> tuple[int, list[str]]:
    """Record every entry; returns (recorded count, errors)."""
    recorded = 0
    errors: list[str] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Replaying entries...", total=len(entries))

        for index, entry in enumerate(entries):
            try:
                store.record_exchange(exchange_from_har_entry(entry))
                recorded += 1
            except (ValueError, TypeError) as e:
                errors.append(f"entry {index}: {e}")
                logger.warning("Skipping HAR entry %d: %s", index, e)

            progress.update(task, advance=1)

    return recorded, errors


def write_outputs(store: TrafficStore, output_dir: Path) -> dict[str, Path]:
    """Write openapi.json, openapi.yaml and traffic.har."""
    output_dir.mkdir(parents=True, exist_ok=True)
    outputs = {
        "json": output_dir / "openapi.json",
        "yaml": output_dir / "openapi.yaml",
        "har": output_dir / "traffic.har",
    }

    outputs["json"].write_text(store.get_document_as_text("json") + "\n", encoding="utf-8")
    outputs["yaml"].write_text(store.get_document_as_text("yaml"), encoding="utf-8")
    with outputs["har"].open("w", encoding="utf-8") as f:
        json.dump(store.get_archive(), f, indent=2, ensure_ascii=False)
        f.write("\n")

    logger.info("Wrote document and archive to %s", output_dir)
    return outputs


def print_summary(store: TrafficStore, recorded: int, errors: list[str]) -> None:
    """Print replay summary to console."""
    document = store.get_document()
    table = Table(title="Replay Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Target", store.target_url)
    table.add_row("Entries Recorded", str(recorded))
    table.add_row("Entries Skipped", str(len(errors)))
    table.add_row("Paths", str(len(document["paths"])))
    table.add_row(
        "Operations",
        str(sum(len(ops) for ops in document["paths"].values())),
    )
    table.add_row(
        "Security Schemes",
        ", ".join(document["components"]["securitySchemes"]) or "-",
    )

    console.print(table)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Synthesize an OpenAPI document from recorded HAR traffic",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("har", type=Path, help="HAR file to replay")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to engine configuration",
    )
    parser.add_argument(
        "--target",
        "-t",
        type=str,
        help="Server URL for the document (default: first HAR entry, then config)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("openapi"),
        help="Output directory for the document and archive",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the generated document with openapi-spec-validator",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not args.har.exists():
        console.print(f"[red]Error: HAR file not found: {args.har}[/red]")
        return 1

    try:
        entries = load_har(args.har)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error reading {args.har}: {e}[/red]")
        return 1

    config = load_config(args.config)
    target = args.target or infer_target(entries) or config.target_url

    console.print("[bold blue]Traffic Replay[/bold blue]")
    console.print(f"  HAR:     {args.har} ({len(entries)} entries)")
    console.print(f"  Target:  {target}")
    console.print(f"  Config:  {args.config}")

    with TrafficStore.create(config=config, target_url=target) as store:
        recorded, errors = replay(store, entries)

        console.print("\n[blue]Writing outputs...[/blue]")
        for kind, path in write_outputs(store, args.output_dir).items():
            console.print(f"  {kind}: {path}")

        print_summary(store, recorded, errors)

        if args.validate:
            valid, error = validate_document(store.get_document())
            if not valid:
                console.print(f"\n[red]Generated document is invalid: {error}[/red]")
                return 1
            console.print("\n[green]Generated document is valid[/green]")

    if errors:
        console.print(f"\n[yellow]Completed with {len(errors)} skipped entries[/yellow]")
        return 1

    console.print("\n[bold green]Replay complete![/bold green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
