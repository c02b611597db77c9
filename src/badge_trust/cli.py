"""
Command-line interface for Badge Trust.

Usage:
    badge-trust validate-domain https://demo.example.org
    badge-trust verify-issuer university.edu
    badge-trust verify badge.json
    cat badge.json | badge-trust verify -
    badge-trust sign badge.json localhost:3000
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, NoReturn

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from badge_trust.config import KEY_FILES_DIR, Settings
from badge_trust.domain import DomainValidation
from badge_trust.engine import BadgeTrustEngine, VerificationResult
from badge_trust.errors import BadgeTrustError
from badge_trust.issuer import IssuerCheck, IssuerVerificationOutcome
from badge_trust.key_codec import decode_private_key
from badge_trust.store import TrustRecord
from badge_trust.trust import TrustLevel

console = Console()


def setup_logging(verbose: bool) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _status(valid: bool, ok: str = "VALID", bad: str = "INVALID") -> str:
    return f"[bold green]{ok}[/]" if valid else f"[bold red]{bad}[/]"


def _print_messages(errors: list[str], warnings: list[str]) -> None:
    if errors:
        console.print("\n[bold red]Errors:[/]")
        for error in errors:
            console.print(f"  [red]x[/] {error}")
    if warnings:
        console.print("\n[bold yellow]Warnings:[/]")
        for warning in warnings:
            console.print(f"  [yellow]![/] {warning}")


def _summary_table() -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")
    return table


def format_domain(result: DomainValidation) -> None:
    """Print a domain policy result."""
    table = _summary_table()
    table.add_row("Status", _status(result.valid, "ALLOWED", "REJECTED"))
    table.add_row("Tier", result.tier.value)
    if result.domain:
        table.add_row("Domain", result.domain)
    table.add_row("Message", result.message)
    if result.error:
        table.add_row("Error", f"[red]{result.error.value}[/]")
    if result.last_error:
        table.add_row("Last Error", result.last_error)

    style = "green" if result.valid else "red"
    console.print(Panel(table, title="Domain Validation", border_style=style))
    _print_messages([], result.warnings)


def format_outcome(outcome: IssuerVerificationOutcome) -> None:
    """Print a well-known issuer verification outcome."""
    table = _summary_table()
    table.add_row("Status", _status(outcome.success, "VERIFIED", "FAILED"))
    table.add_row("Domain", outcome.domain)
    if outcome.well_known_url:
        table.add_row("Well-known URL", outcome.well_known_url)
    if outcome.record is not None:
        table.add_row("Issuer", outcome.record.display_name)
        table.add_row("Issuer ID", outcome.record.id)
        table.add_row("Type", outcome.record.type)
    if outcome.error is not None:
        table.add_row("Error", f"[red]{outcome.error.kind.value}[/]")
        table.add_row("Message", outcome.error.message)

    style = "green" if outcome.success else "red"
    console.print(Panel(table, title="Issuer Verification", border_style=style))


def format_issuer_check(check: IssuerCheck) -> None:
    """Print the result of checking an issuer URL."""
    table = _summary_table()
    table.add_row("Status", _status(check.valid))
    table.add_row("URL", check.url)
    if check.method is not None:
        table.add_row("Method", check.method.value)
    table.add_row("Message", check.message)
    if check.error is not None:
        table.add_row("Error", f"[red]{check.error.kind.value}[/]")

    style = "green" if check.valid else "red"
    console.print(Panel(table, title="Issuer Check", border_style=style))
    _print_messages([], check.warnings)


def format_result(result: VerificationResult) -> None:
    """Format and print a credential verification result."""
    if result.valid and result.trust_level is TrustLevel.CRYPTOGRAPHICALLY_VERIFIED:
        panel_style = "green"
    elif result.valid:
        panel_style = "yellow"
    else:
        panel_style = "red"

    table = _summary_table()
    table.add_row("Status", _status(result.valid))
    table.add_row("Trust Level", result.trust_level.value)
    table.add_row("Version", result.version.value)
    table.add_row("Source", result.source)

    table.add_row("Structure", _status(result.structure.valid, "Valid", "Invalid"))

    if result.issuer is not None:
        table.add_row("Issuer", _status(result.issuer.valid, "Valid", "Invalid"))
        table.add_row("Issuer URL", result.issuer.url)
        if result.issuer.method is not None:
            table.add_row("Issuer Check", result.issuer.method.value)
        if result.issuer.error is not None:
            table.add_row("Issuer Error", f"[red]{result.issuer.error.message}[/]")

    if result.signature is not None:
        table.add_row("Signature", _status(result.signature.valid, "Valid", "Invalid"))
        table.add_row("Signature Result", result.signature.reason.value)
        if result.signature.verification_method:
            table.add_row("Verification Method", result.signature.verification_method)

    console.print(Panel(table, title="Verification Result", border_style=panel_style))

    warnings = list(result.structure.warnings)
    if result.issuer is not None:
        warnings.extend(result.issuer.warnings)
    _print_messages(result.structure.errors, warnings)


def format_record(record: TrustRecord) -> None:
    """Print a stored trust record."""
    table = _summary_table()
    table.add_row("Status", _status(record.is_verified, "VERIFIED", "FAILED"))
    table.add_row("Domain", record.domain)
    table.add_row("Name", record.display_name)
    table.add_row("ID", record.id)
    table.add_row("Type", record.type)
    for label, value in (
        ("URL", record.url),
        ("Email", record.email),
        ("Last Verified", record.last_verified),
        ("Last Attempt", record.last_verification_attempt),
        ("Last Error", record.last_error),
    ):
        if value:
            table.add_row(label, value)
    table.add_row("Public Keys", str(len(record.public_keys)))

    style = "green" if record.is_verified else "red"
    console.print(Panel(table, title="Trusted Issuer", border_style=style))


def load_credential(source: str) -> str:
    """Load credential text from a file or stdin.

    URLs are passed through for the engine to fetch.

    Args:
        source: File path, URL, or "-" for stdin.

    Returns:
        Raw JSON text, or the URL.
    """
    if source == "-":
        return sys.stdin.read()

    if source.startswith("http://") or source.startswith("https://"):
        return source

    path = Path(source)
    if not path.exists():
        raise click.ClickException(f"File not found: {source}")

    return path.read_text(encoding="utf-8")


def _engine(ctx: click.Context) -> BadgeTrustEngine:
    obj = ctx.ensure_object(dict)
    if "engine" not in obj:
        settings = Settings.from_env()
        if obj.get("timeout") is not None:
            settings = replace(settings, fetch_timeout=obj["timeout"])
        obj["engine"] = BadgeTrustEngine(settings=settings)
    return obj["engine"]


def _json_output(ctx: click.Context) -> bool:
    return bool(ctx.ensure_object(dict).get("json_output"))


def _emit(data: Any) -> None:
    console.print_json(data=data)


def _fail(ctx: click.Context, error: Exception) -> NoReturn:
    kind = error.kind.value if isinstance(error, BadgeTrustError) else None
    if _json_output(ctx):
        console.print_json(data={"error": str(error), "kind": kind})
    else:
        prefix = f"{kind}: " if kind else ""
        console.print(f"[red]Error:[/] {prefix}{error}")
    sys.exit(2)


@click.group()
@click.option(
    "--json-output",
    is_flag=True,
    help="Output results as JSON",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="HTTP request timeout in seconds",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option()
@click.pass_context
def main(ctx: click.Context, json_output: bool, timeout: float | None, verbose: bool) -> None:
    """Verify Open Badges issuers and credentials.

    Examples:

        badge-trust validate-domain https://demo.example.org

        badge-trust verify-issuer university.edu

        badge-trust verify https://university.edu/badges/123
    """
    setup_logging(verbose)
    obj = ctx.ensure_object(dict)
    obj["json_output"] = json_output
    obj["timeout"] = timeout


@main.command("validate-domain")
@click.argument("url")
@click.pass_context
def validate_domain(ctx: click.Context, url: str) -> None:
    """Classify the domain of URL against the issuer domain policy."""
    try:
        result = _engine(ctx).validate_domain(url)
    except BadgeTrustError as e:
        _fail(ctx, e)

    if _json_output(ctx):
        _emit(result.to_dict())
    else:
        format_domain(result)
    sys.exit(0 if result.valid else 1)


@main.command("verify-issuer")
@click.argument("domain")
@click.pass_context
def verify_issuer(ctx: click.Context, domain: str) -> None:
    """Verify DOMAIN through its well-known issuer document.

    Running it again re-verifies the domain and refreshes its record.
    """
    try:
        outcome = _engine(ctx).verify_issuer(domain)
    except BadgeTrustError as e:
        _fail(ctx, e)

    if _json_output(ctx):
        _emit(outcome.to_dict())
    else:
        format_outcome(outcome)
    sys.exit(0 if outcome.success else 1)


@main.command("verify-issuer-url")
@click.argument("url")
@click.pass_context
def verify_issuer_url(ctx: click.Context, url: str) -> None:
    """Check an issuer URL the way credential verification does."""
    try:
        check = _engine(ctx).verify_issuer_url(url)
    except BadgeTrustError as e:
        _fail(ctx, e)

    if _json_output(ctx):
        _emit(check.to_dict())
    else:
        format_issuer_check(check)
    sys.exit(0 if check.valid else 1)


@main.command("verify")
@click.argument("source")
@click.pass_context
def verify(ctx: click.Context, source: str) -> None:
    """Verify an Open Badges credential.

    SOURCE can be:
    - A file path (e.g., badge.json)
    - A URL (e.g., https://example.com/badges/123)
    - "-" to read from stdin
    """
    try:
        result = _engine(ctx).verify_credential(load_credential(source))
    except BadgeTrustError as e:
        _fail(ctx, e)

    if _json_output(ctx):
        _emit(result.to_dict())
    else:
        format_result(result)
    sys.exit(0 if result.valid else 1)


@main.command("sign")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("domain")
@click.option(
    "--private-key-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Sign with this PEM private key instead of the configured one",
)
@click.option("--verification-method", default=None, help="verificationMethod for the proof")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the signed credential here instead of stdout",
)
@click.pass_context
def sign(
    ctx: click.Context,
    file: Path,
    domain: str,
    private_key_file: Path | None,
    verification_method: str | None,
    output: Path | None,
) -> None:
    """Sign the credential in FILE on behalf of DOMAIN."""
    try:
        credential = json.loads(file.read_text(encoding="utf-8"))
        private_key = (
            decode_private_key(private_key_file.read_text(encoding="utf-8"))
            if private_key_file
            else None
        )
        signed = _engine(ctx).sign_credential(
            credential,
            domain,
            verification_method=verification_method,
            private_key=private_key,
        )
    except json.JSONDecodeError as e:
        _fail(ctx, click.ClickException(f"Invalid JSON: {e}"))
    except BadgeTrustError as e:
        _fail(ctx, e)

    if output is not None:
        output.write_text(json.dumps(signed.credential, indent=2), encoding="utf-8")
        if not _json_output(ctx):
            console.print(f"[green]Signed credential written to {output}[/]")
            console.print(f"Verification method: {signed.verification_method}")
            return
    _emit(signed.credential)


@main.command("generate-keys")
@click.option("--name", required=True, help="Issuer display name")
@click.option("--url", required=True, help="Issuer website, e.g. https://university.edu")
@click.option("--email", default=None, help="Issuer contact email")
@click.option("--description", default=None, help="Issuer description")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path(KEY_FILES_DIR),
    show_default=True,
    help="Directory for the generated files",
)
@click.pass_context
def generate_keys(
    ctx: click.Context,
    name: str,
    url: str,
    email: str | None,
    description: str | None,
    output_dir: Path,
) -> None:
    """Generate an Ed25519 key pair and a well-known issuer document."""
    try:
        files = _engine(ctx).generate_issuer_files(
            name, url, email=email, description=description, output_dir=output_dir
        )
    except BadgeTrustError as e:
        _fail(ctx, e)

    if _json_output(ctx):
        _emit(
            {
                "document": str(files.document_path),
                "privateKey": str(files.private_key_path),
                "publicKey": str(files.public_key_path),
                "publicKeyMultibase": files.key_pair.public_key_multibase,
            },
        )
        return

    console.print(f"[green]Generated issuer files in {files.directory}[/]")
    console.print(f"  {files.document_path}")
    console.print(f"  {files.public_key_path}")
    console.print(f"  {files.private_key_path} [yellow](keep this secret)[/]")
    console.print(
        f"\nPublish {files.document_path.name} at "
        f"{url.rstrip('/')}/.well-known/openbadges-issuer.json"
    )


@main.command("cache-public-key")
@click.argument("issuer_url")
@click.pass_context
def cache_public_key(ctx: click.Context, issuer_url: str) -> None:
    """Fetch the issuer document at ISSUER_URL and cache its public key."""
    try:
        key = _engine(ctx).cache_public_key(issuer_url)
    except BadgeTrustError as e:
        _fail(ctx, e)

    if _json_output(ctx):
        _emit({"cached": key is not None, "domain": key.domain if key else None})
    elif key is None:
        console.print(f"[yellow]No public key published at {issuer_url}[/]")
    else:
        console.print(f"[green]Cached public key for {key.domain}[/] ({key.encoding.value})")
    sys.exit(0 if key is not None else 1)


@main.command("issuers")
@click.pass_context
def issuers(ctx: click.Context) -> None:
    """List issuers in the trust store."""
    try:
        records = _engine(ctx).list_issuers()
    except BadgeTrustError as e:
        _fail(ctx, e)

    if _json_output(ctx):
        _emit([record.to_dict() for record in records])
        return

    if not records:
        console.print("[dim]No issuers in the trust store[/]")
        return

    table = Table(title="Trusted Issuers")
    table.add_column("Domain")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Last Verified", style="dim")
    for record in records:
        table.add_row(
            record.domain,
            record.display_name,
            _status(record.is_verified, "verified", "failed"),
            record.last_verified or "-",
        )
    console.print(table)


@main.command("issuer")
@click.argument("domain")
@click.pass_context
def issuer(ctx: click.Context, domain: str) -> None:
    """Show the trust record for DOMAIN."""
    try:
        record = _engine(ctx).get_issuer(domain)
    except BadgeTrustError as e:
        _fail(ctx, e)

    if record is None:
        if _json_output(ctx):
            _emit({"error": f"Issuer not found: {domain}"})
        else:
            console.print(f"[red]Issuer not found:[/] {domain}")
        sys.exit(1)

    if _json_output(ctx):
        _emit(record.to_dict())
    else:
        format_record(record)


if __name__ == "__main__":
    main()
