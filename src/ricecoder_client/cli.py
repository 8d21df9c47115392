"""Command-line interface for ricecoder-client."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape

from ricecoder_client import __version__
from ricecoder_client.client import RicecoderClient
from ricecoder_client.errors import RicecoderError, SettingsFileError, ValidationError
from ricecoder_client.logging import setup_logging
from ricecoder_client.settings.loader import load_settings, read_settings_file
from ricecoder_client.settings.schema import Settings
from ricecoder_client.settings.validator import ValidationResult, validate_settings
from ricecoder_client.streams import Chunk, chunk_text

console = Console(stderr=True, soft_wrap=True)
report = Console(soft_wrap=True, highlight=False)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ricecoder-client",
        description="Talk to a ricecoder server over JSON-RPC",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v debug, -vv wire trace)",
    )
    parser.add_argument(
        "--project",
        type=Path,
        help="Project directory whose .ricecoder/settings.yaml is loaded",
    )
    parser.add_argument("--host", help="Server host (overrides settings)")
    parser.add_argument("--port", type=int, help="Server port (overrides settings)")
    parser.add_argument(
        "--timeout",
        type=int,
        help="Request timeout in milliseconds (overrides settings)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a settings file",
    )
    validate_parser.add_argument("file", type=Path, help="YAML settings file")

    request_parser = subparsers.add_parser(
        "request",
        help="Send one request and print the result",
    )
    request_parser.add_argument("method", help="JSON-RPC method name")
    request_parser.add_argument("--params", help="JSON params object")

    stream_parser = subparsers.add_parser(
        "stream",
        help="Start a stream and print chunks as they arrive",
    )
    stream_parser.add_argument("method", help="Base method name (without /stream)")
    stream_parser.add_argument("--params", help="JSON params object")

    return parser


def print_result(result: ValidationResult, out: Console) -> None:
    """Print validation errors and warnings with their remediation."""
    for issue in result.errors:
        out.print(f"[red]error:[/red] {issue.field}: {escape(issue.message)}")
        out.print(f"  [dim]fix:[/dim] {escape(issue.remediation)}")
    for issue in result.warnings:
        out.print(f"[yellow]warning:[/yellow] {issue.field}: {escape(issue.message)}")
        out.print(f"  [dim]hint:[/dim] {escape(issue.remediation)}")


def _parse_params(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise SystemExit(f"--params is not valid JSON: {e}") from e


def _settings_for(parsed: argparse.Namespace) -> Settings:
    settings = load_settings(parsed.project)
    overrides: dict[str, Any] = {}
    if parsed.host is not None:
        overrides["server_host"] = parsed.host
    if parsed.port is not None:
        overrides["server_port"] = parsed.port
    if parsed.timeout is not None:
        overrides["request_timeout"] = parsed.timeout
    return settings.replace(**overrides) if overrides else settings


def run_validate(path: Path) -> int:
    if not path.exists():
        console.print(f"[red]error:[/red] {escape(str(path))} does not exist")
        return 1
    try:
        data = read_settings_file(path)
    except SettingsFileError as e:
        console.print(f"[red]error:[/red] {escape(str(e))}")
        return 1
    result = validate_settings(data)
    print_result(result, report)
    if result.valid:
        report.print(f"[green]{escape(str(path))}: ok[/green]")
        return 0
    return 1


async def run_request(settings: Settings, method: str, params: Any) -> int:
    async with RicecoderClient.from_settings(settings) as client:
        result = await client.request(method, params)
    print(json.dumps(result, indent=2))
    return 0


async def run_stream(settings: Settings, method: str, params: Any) -> int:
    done = asyncio.Event()
    failure: list[RicecoderError] = []

    def on_chunk(_stream_id: str, chunk: Chunk) -> None:
        sys.stdout.write(chunk_text(chunk))
        sys.stdout.flush()

    def on_complete(_stream_id: str, _chunks: list[Chunk]) -> None:
        done.set()

    def on_error(_stream_id: str, error: RicecoderError) -> None:
        failure.append(error)
        done.set()

    async with RicecoderClient.from_settings(settings) as client:
        client.on_stream_chunk(on_chunk)
        client.on_stream_complete(on_complete)
        client.on_stream_error(on_error)
        stream_id = await client.start_stream(method, params)
        try:
            await done.wait()
        except asyncio.CancelledError:
            await client.cancel_stream(stream_id)
            raise
        client.release_stream(stream_id)

    print()
    if failure:
        console.print(f"[red]error:[/red] {escape(str(failure[0]))}")
        return 1
    return 0


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    if parsed.command == "validate":
        setup_logging(verbose=parsed.verbose)
        return run_validate(parsed.file)

    params = _parse_params(parsed.params)
    if params is not None and parsed.command == "stream" and not isinstance(params, dict):
        console.print("[red]error:[/red] stream --params must be a JSON object")
        return 1

    try:
        settings = _settings_for(parsed)
    except ValidationError as e:
        setup_logging(verbose=parsed.verbose)
        print_result(e.result, console)
        return 1
    setup_logging(settings, verbose=parsed.verbose)

    try:
        if parsed.command == "request":
            return asyncio.run(run_request(settings, parsed.method, params))
        return asyncio.run(run_stream(settings, parsed.method, params))
    except ValidationError as e:
        print_result(e.result, console)
        return 1
    except RicecoderError as e:
        console.print(f"[red]error:[/red] {escape(str(e))}")
        return 1


def main() -> None:
    sys.exit(run_cli(sys.argv[1:]))
