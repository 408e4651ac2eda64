"""Command line entry point for threatrelay."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console

from threatrelay.dependencies import build_relay_service, get_settings, get_telemetry
from threatrelay.logging_config import configure_application_logging
from threatrelay.services.document_source import DocumentSourceError, read_document
from threatrelay.services.relay_service import RelayInputError
from threatrelay.services.report_parser import parse_threat_reports
from threatrelay.services.webhook_client import WebhookDeliveryError

console = Console(stderr=True)


@click.group()
@click.version_option(version="0.1.0")
@click.option("--log-level", default=None, help="Console log level (overrides THREATRELAY_LOG_LEVEL).")
def main(log_level: str | None) -> None:
    """Threat report extraction and delivery."""
    configure_application_logging(get_settings(), console_level=log_level)


@main.command()
@click.option("--url", "url", default=None, help="Fetch the document from this URL.")
@click.option(
    "--file",
    "file_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Read the document from a local file.",
)
@click.option(
    "--out",
    "out_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Write the records here instead of stdout.",
)
def parse(url: str | None, file_path: Path | None, out_path: Path | None) -> None:
    """Extract threat reports from a document as JSON."""
    settings = get_settings()
    try:
        document = read_document(
            file_path=file_path,
            url=url,
            fallback_url=settings.source_url,
            timeout_seconds=settings.fetch_timeout_seconds,
            user_agent=settings.user_agent,
        )
    except DocumentSourceError as exc:
        console.print(str(exc), style="red", markup=False)
        raise SystemExit(1) from exc

    reports = parse_threat_reports(document, telemetry=get_telemetry())
    output = json.dumps([report.to_json_dict() for report in reports], indent=2, ensure_ascii=False)

    if out_path is None:
        click.echo(output)
        return

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(output + "\n", encoding="utf-8")
    console.print(f"Extracted [bold]{len(reports)}[/bold] reports to [cyan]{out_path}[/cyan]")


@main.command()
@click.option(
    "--records",
    "records_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Records file to deliver (defaults to THREATRELAY_FORUMS_PATH).",
)
def send(records_path: Path | None) -> None:
    """Deliver records that were not sent before."""
    settings = get_settings()
    try:
        service = build_relay_service()
        stats = service.run(records_path or settings.forums_path)
    except (ValueError, RelayInputError, WebhookDeliveryError) as exc:
        console.print(str(exc), style="red", markup=False)
        raise SystemExit(1) from exc

    console.print(f"Done. Sent: {stats.sent}, skipped (already sent): {stats.skipped}")


if __name__ == "__main__":
    main()
