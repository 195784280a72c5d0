"""
Command line interface - Replay message streams and run the ingestion service
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator, Optional

import typer

from .components.lookup_tables import ProtocolViolationError
from .components.summary import format_summary
from .config import settings
from .delivery.client import AuthorizationError
from .models.events import Envelope
from .session import RunSession

app = typer.Typer(add_completion=False, help="Cucumber message stream reporter")


def _configure_logging():
    logging.basicConfig(
        level=settings.effective_log_level,
        format="%(asctime)s %(levelname)s %(message)s",
    )


async def read_envelopes(path: Path) -> AsyncIterator[Envelope]:
    """Yield envelopes from a newline-delimited JSON file, skipping blank lines."""
    with path.open(encoding="utf-8") as stream:
        for line_number, line in enumerate(stream, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield Envelope.from_dict(json.loads(line))
            except ValueError as e:
                raise ProtocolViolationError("envelope", f"line {line_number} ({e})") from e


async def _replay(messages: Path, run_name: Optional[str], report_output: Optional[Path]) -> RunSession:
    session = RunSession(settings, run_name=run_name)
    try:
        await session.consume(read_envelopes(messages))
    finally:
        await session.aclose()
    if report_output is not None:
        report_output.write_text(
            json.dumps(session.report.to_payload(), indent=2),
            encoding="utf-8",
        )
    return session


@app.command()
def replay(
    messages: Path = typer.Option(..., exists=True, dir_okay=False, help="NDJSON message stream"),
    run_name: Optional[str] = typer.Option(None, help="Name of the remote run"),
    report_output: Optional[Path] = typer.Option(None, help="Write the final report JSON here"),
) -> None:
    """Replay a recorded message stream through aggregation, delivery and recovery."""
    _configure_logging()
    try:
        session = asyncio.run(_replay(messages, run_name, report_output))
    except ProtocolViolationError as e:
        typer.echo(f"Protocol violation: {e}", err=True)
        raise typer.Exit(code=1)
    except AuthorizationError as e:
        typer.echo(f"Warning: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(format_summary(session.summary()))
    raise typer.Exit(code=session.exit_code)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
) -> None:
    """Run the HTTP ingestion service."""
    import uvicorn

    _configure_logging()
    uvicorn.run("bvt_reporter.main:app", host=host, port=port)


if __name__ == "__main__":
    app()
