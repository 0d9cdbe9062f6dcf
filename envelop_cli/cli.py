#!/usr/bin/env python3

from __future__ import annotations
import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from envelop.builder import EnvelopeBuilder
from envelop.codec import decode as decode_wire, encode as encode_envelope
from envelop.config import ConfigError, Settings, load_settings
from envelop.envelope import Envelope, EnvelopeError
from envelop.log import get_logger, set_level
from envelop.utils import format_timestamp
from .keys import SharedSecret, default_key_dir, load_secret, save_secret

app = typer.Typer(help="envelop message envelope CLI")
console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


def _fail(message: str) -> None:
    err_console.print(f"[red]{escape(message)}[/]")
    raise typer.Exit(code=1)


def _settings(config: Optional[Path]) -> Settings:
    try:
        settings = load_settings(config)
    except ConfigError as e:
        _fail(str(e))
    if settings.log_level:
        set_level(settings.log_level)
    return settings


def _resolve_secret(secret: Optional[str], secret_file: Optional[Path], settings: Settings) -> Optional[str]:
    if secret is not None:
        return secret
    if secret_file is not None:
        found = load_secret(secret_file)
        if found is None and not secret_file.is_absolute():
            found = load_secret(default_key_dir() / secret_file)
        if found is None:
            _fail(f"Secret file not found: {secret_file}")
        return found.value
    return settings.secret


def _read_wire(wire: Optional[str], input_file: Optional[Path]) -> str:
    if wire is not None:
        return wire.strip()
    if input_file is not None:
        try:
            return input_file.read_text(encoding="utf-8").strip()
        except OSError as e:
            _fail(f"Cannot read {input_file}: {e}")
    return sys.stdin.read().strip()


def _parse_headers(pairs: Optional[List[str]]) -> dict:
    headers = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise typer.BadParameter(f"header must be key=value, got {pair!r}", param_hint="--header")
        k, v = pair.split("=", 1)
        headers[k.strip()] = v
    return headers


def _envelope_table(env: Envelope, secret: Optional[str]) -> Table:
    table = Table(title=f"Envelope {env.id}")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in env.to_dict().items():
        if isinstance(value, (dict, list)):
            shown = json.dumps(value, ensure_ascii=False)
        elif value is None:
            shown = "[dim]null[/]"
            table.add_row(key, shown)
            continue
        else:
            shown = str(value)
        table.add_row(key, escape(shown))

    if env.expires_at is not None:
        status = "[red]expired[/]" if env.is_expired() else "[green]live[/]"
        table.add_row("expires", f"{format_timestamp(env.expires_at)} ({status})")
    if secret is not None:
        ok = env.check_signature(secret)
        table.add_row("verified", "[green]valid[/]" if ok else "[red]invalid[/]")
    return table


@app.command()
def keygen(
    name: str = typer.Argument(..., help="Name of the shared secret"),
    directory: Optional[Path] = typer.Option(None, "--dir", help="Key directory (default ~/.envelop)"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing key"),
):
    """Generate a random shared secret for HMAC signing."""
    base = directory or default_key_dir()
    try:
        path = save_secret(base / name, SharedSecret.generate(), overwrite=force)
    except FileExistsError as e:
        _fail(f"{e}; use --force to replace it")
    console.print(f"[bold green]Wrote secret[/] {escape(str(path))}")


@app.command()
def new(
    msg_type: str = typer.Option(..., "--type", "-t", help="Message type, e.g. chat.message"),
    body: Optional[str] = typer.Option(None, help="Text body"),
    json_body: Optional[str] = typer.Option(None, "--json-body", help="JSON body"),
    attach: Optional[Path] = typer.Option(None, help="Attach a local file (base64 body)"),
    link: Optional[str] = typer.Option(None, help="Link to an external file"),
    sender: Optional[str] = typer.Option(None),
    receiver: Optional[str] = typer.Option(None),
    trace: Optional[str] = typer.Option(None),
    reference: Optional[str] = typer.Option(None),
    reply: Optional[str] = typer.Option(None, help="Id of the envelope being answered"),
    header: Optional[List[str]] = typer.Option(None, "--header", "-H", help="key=value, repeatable"),
    ttl: Optional[int] = typer.Option(None, min=0, help="Time to live in seconds"),
    secret: Optional[str] = typer.Option(None, help="Shared secret for signing"),
    secret_file: Optional[Path] = typer.Option(None, help="File (or key name) holding the secret"),
    compression: Optional[str] = typer.Option(None, help="none or gzip"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write wire text here instead of stdout"),
    config: Optional[Path] = typer.Option(None, help="Settings file (YAML)"),
):
    """Build an envelope, optionally sign it, and print the wire text."""
    settings = _settings(config)
    given = [x for x in (body, json_body, attach, link) if x is not None]
    if len(given) > 1:
        _fail("Use only one of --body, --json-body, --attach, --link")

    b = EnvelopeBuilder.start().type(msg_type)
    try:
        if body is not None:
            b.body(body)
        elif json_body is not None:
            try:
                b.body(json.loads(json_body))
            except (json.JSONDecodeError, TypeError) as e:
                raise typer.BadParameter(f"invalid JSON body: {e}", param_hint="--json-body")
        elif attach is not None:
            b.attach(attach)
        elif link is not None:
            b.link(link)

        for setter, value in (
            (b.sender, sender), (b.receiver, receiver), (b.trace, trace),
            (b.reference, reference), (b.reply, reply),
        ):
            if value is not None:
                setter(value)
        b.headers(_parse_headers(header))
        if ttl is not None:
            b.ttl(ttl)

        key = _resolve_secret(secret, secret_file, settings)
        if key is not None:
            b.sign(key)

        env = b.build()
        wire = encode_envelope(env, compression or settings.compression)
    except EnvelopeError as e:
        _fail(str(e))

    if output is not None:
        output.write_text(wire, encoding="utf-8")
        err_console.print(f"[dim]wrote {escape(str(output))}[/]")
    else:
        typer.echo(wire)


@app.command()
def decode(
    wire: Optional[str] = typer.Argument(None, help="Wire text; read from --input or stdin if omitted"),
    input_file: Optional[Path] = typer.Option(None, "--input", "-i", help="Read wire text from a file"),
    compression: Optional[str] = typer.Option(None, help="none or gzip"),
    secret: Optional[str] = typer.Option(None, help="Shared secret to verify with"),
    secret_file: Optional[Path] = typer.Option(None, help="File (or key name) holding the secret"),
    require_signature: bool = typer.Option(False, "--require-signature", help="Fail unless the signature verifies"),
    as_json: bool = typer.Option(False, "--json", help="Print canonical JSON instead of a table"),
    config: Optional[Path] = typer.Option(None, help="Settings file (YAML)"),
):
    """Decode wire text and show the envelope."""
    settings = _settings(config)
    key = _resolve_secret(secret, secret_file, settings)
    required = require_signature or settings.signature_required
    text = _read_wire(wire, input_file)
    try:
        env = decode_wire(
            text,
            compression or settings.compression,
            verify_with_secret=key,
            signature_required=required,
        )
    except EnvelopeError as e:
        _fail(f"{type(e).__name__}: {e}")

    if as_json:
        typer.echo(env.to_canonical_text())
    else:
        console.print(_envelope_table(env, key))


@app.command()
def verify(
    wire: Optional[str] = typer.Argument(None, help="Wire text; read from --input or stdin if omitted"),
    input_file: Optional[Path] = typer.Option(None, "--input", "-i", help="Read wire text from a file"),
    compression: Optional[str] = typer.Option(None, help="none or gzip"),
    secret: Optional[str] = typer.Option(None, help="Shared secret to verify with"),
    secret_file: Optional[Path] = typer.Option(None, help="File (or key name) holding the secret"),
    config: Optional[Path] = typer.Option(None, help="Settings file (YAML)"),
):
    """Check an envelope's signature; exit status 0 if valid, 1 otherwise."""
    settings = _settings(config)
    key = _resolve_secret(secret, secret_file, settings)
    if key is None:
        _fail("A secret is required (--secret, --secret-file or config)")
    text = _read_wire(wire, input_file)
    try:
        env = decode_wire(text, compression or settings.compression)
    except EnvelopeError as e:
        _fail(f"{type(e).__name__}: {e}")

    if env.check_signature(key):
        typer.echo("valid")
        return
    logger.warning("Signature check failed for %s", env.id, extra={"envelope_id": env.id, "msg_type": env.type})
    typer.echo("invalid")
    raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
