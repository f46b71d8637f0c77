"""Developer entry point: run extraction and analysis on a local PDF."""

import asyncio
import logging
import os
import sys

import typer

from api.errors import ConfigurationError
from api.report_service import ReportProcessor, ReportStatus
from extraction.pipeline import ExtractionPipeline

_logger = logging.getLogger(__name__)

app = typer.Typer(name="report-core", help="Radiology report extraction and analysis")


@app.callback()
def _configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.command()
def extract(pdf_path: str) -> None:
    """Print the best-effort text of a PDF (native layer or OCR)."""
    result = asyncio.run(ExtractionPipeline().extract_from_pdf(pdf_path))
    if result.failed:
        typer.echo("Failed to extract text from PDF", err=True)
        raise typer.Exit(code=1)
    _logger.info("Extraction method: %s, %d chars", result.method.value, result.total_chars)
    typer.echo(result.text)


@app.command()
def process(pdf_path: str) -> None:
    """Extract and analyze a report, printing the structured JSON result."""
    try:
        report = asyncio.run(ReportProcessor().process_report(pdf_path))
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)

    if report.status != ReportStatus.COMPLETED:
        typer.echo(f"Processing failed: {report.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(report.analysis.model_dump_json(indent=2))


if __name__ == "__main__":
    app()
