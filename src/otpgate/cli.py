"""CLI entry point for otpgate."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console

console = Console()


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """otpgate: TOTP second-factor tooling."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )


@main.command()
def status() -> None:
    """Show effective configuration."""
    from otpgate.config import settings

    console.print("[bold]otpgate configuration[/bold]")
    console.print(f"  Database: {settings.database_url.split('@')[-1]}")
    console.print(f"  Master key: {'set' if settings.otpgate_master_key else '[red]not set[/red]'}")
    console.print(f"  Issuer: {settings.totp_issuer}")
    console.print(f"  Digits: {settings.totp_digits}  Interval: {settings.totp_interval}s  Window: ±{settings.totp_valid_window}")
    console.print(f"  Reject replay: {settings.totp_reject_replay}")
    console.print(f"  Time check: {settings.time_check_url} (max drift {settings.max_clock_drift_s}s)")


@main.command("clock-check")
@click.option("--url", default=None, help="Plain-text Unix time endpoint.")
def clock_check(url: str | None) -> None:
    """Compare the local clock with a reference time source."""
    from otpgate.clock import check_clock_skew

    report = check_clock_skew(url)
    if not report.checked:
        console.print(f"[yellow]Clock check failed:[/yellow] {report.error}")
        return
    if report.within_tolerance:
        console.print(f"[green]Clock OK[/green] (drift {report.drift_s}s)")
    else:
        console.print(f"[red]Clock off by {abs(report.drift_s)}s[/red] (tolerance {report.max_drift_s}s)")
        sys.exit(1)


@main.command("new-secret")
@click.argument("label")
@click.option("--issuer", default=None, help="Issuer shown in authenticator apps.")
@click.option("--qr", "qr_path", type=click.Path(dir_okay=False, path_type=Path), help="Write a QR code PNG here.")
def new_secret(label: str, issuer: str | None, qr_path: Path | None) -> None:
    """Generate a secret and provisioning URI for LABEL."""
    from otpgate.codec import build_provisioning_uri, generate_secret, render_qr_png
    from otpgate.config import settings

    secret = generate_secret()
    uri = build_provisioning_uri(label, secret, issuer or settings.totp_issuer)
    console.print(f"Secret: {secret}")
    if uri is None:
        console.print("[yellow]Issuer could not be encoded; enter the secret manually.[/yellow]")
        return
    console.print(f"URI: {uri}", soft_wrap=True)
    if qr_path:
        qr_path.write_bytes(render_qr_png(uri))
        console.print(f"QR code written to {qr_path}")


@main.command()
@click.argument("secret")
def code(secret: str) -> None:
    """Print the current code for SECRET."""
    from otpgate.codec import is_valid_secret
    from otpgate.verifier import TOTPVerifier

    if not is_valid_secret(secret):
        console.print("[red]Invalid base32 secret[/red]")
        sys.exit(2)
    verifier = TOTPVerifier()
    console.print(f"{verifier.code_at(secret)} (valid {verifier.remaining_seconds()}s)")


@main.command()
@click.argument("secret")
@click.argument("submitted")
def verify(secret: str, submitted: str) -> None:
    """Check SUBMITTED against SECRET for the current time."""
    from otpgate.codec import is_valid_secret
    from otpgate.verifier import TOTPVerifier

    if not is_valid_secret(secret):
        console.print("[red]Invalid base32 secret[/red]")
        sys.exit(2)
    if TOTPVerifier().verify(secret, submitted):
        console.print("[green]valid[/green]")
    else:
        console.print("[red]invalid[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
