# carechain/cli/main.py
"""
CLI for exploring an in-memory care-episode ledger: who can append, who can read what,
and how tampering shows up.
"""

import json
import logging
import os
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from carechain.chain.ledger import Ledger
from carechain.chain.seed import seed_care_episode
from carechain.core.errors import LedgerError
from carechain.core.types import Visibility
from carechain.crypto.codec import CipherMode, EnvelopeCodec
from carechain.directory import OrgDirectory, create_directory, demo_directory

app = typer.Typer(
    name="carechain",
    help="Inspect a proof-of-authority ledger of encrypted healthcare messages",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

VISIBILITY_STYLE = {
    Visibility.VISIBLE: "green",
    Visibility.HIDDEN: "yellow",
    Visibility.CORRUPTED: "red",
    Visibility.UNKNOWN_ORG: "magenta",
}


def get_directory(directory_flag: Optional[str] = None) -> OrgDirectory:
    """Resolve the organization directory in this order:
    1. --directory flag
    2. CARECHAIN_DIRECTORY environment variable
    3. Default: built-in Hospital / Lab / Insurance demo consortium
    """
    uri = directory_flag or os.environ.get("CARECHAIN_DIRECTORY")
    if uri:
        return create_directory(uri)
    return demo_directory()


def get_cipher_mode(mode_flag: Optional[str] = None) -> CipherMode:
    return CipherMode((mode_flag or os.environ.get("CARECHAIN_CIPHER_MODE") or "gcm").lower())


def build_ledger(directory: Optional[str], mode: Optional[str], tamper: Optional[int] = None) -> Ledger:
    """Fresh ledger seeded with the sample care episode (nothing is persisted between runs)."""
    try:
        org_directory = get_directory(directory)
        codec = EnvelopeCodec(get_cipher_mode(mode))
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Failed to load configuration: {str(e)}[/]")
        raise typer.Exit(1)

    ledger = Ledger(org_directory, codec=codec)
    try:
        seed_care_episode(ledger)
    except LedgerError as e:
        console.print(f"[red]Could not seed the ledger: {str(e)}[/]")
        console.print("[yellow]The directory must list Hospital, Lab and Insurance as validators.[/]")
        raise typer.Exit(1)

    if tamper is not None:
        try:
            ledger.corrupt_block(tamper)
        except LedgerError as e:
            console.print(f"[red]Cannot tamper: {str(e)}[/]")
            raise typer.Exit(1)
        console.print(f"[yellow]⚠ Block {tamper} ciphertext overwritten (tamper simulation)[/]")
    return ledger


def print_chain(ledger: Ledger, viewer: str) -> None:
    snapshot = ledger.get_chain(viewer)
    table = Table(title=f"Chain as seen by {viewer}")
    table.add_column("#", justify="right")
    table.add_column("Added by")
    table.add_column("Type")
    table.add_column("From → To")
    table.add_column("Content")
    table.add_column("Hash")

    for view in snapshot.blocks:
        payload = view.payload
        route = f"{payload.message.sender} → {payload.message.recipient}" if payload.message else "—"
        style = VISIBILITY_STYLE[payload.visibility]
        table.add_row(
            str(view.index), view.added_by, payload.type, route,
            f"[{style}]{escape(payload.content)}[/]", view.short_hash,
        )

    console.print(table)
    print_validity(ledger)


def print_validity(ledger: Ledger) -> bool:
    result = ledger.verify()
    if result.is_valid:
        console.print(f"[green]✓ Chain is valid ({ledger.length} blocks)[/]")
    else:
        console.print("[red]✗ Chain is NOT valid[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}")
    return result.is_valid


def print_access_matrix(ledger: Ledger) -> None:
    matrix = ledger.access_matrix()
    orgs = sorted(ledger.directory.all_org_ids())

    table = Table(title="Data access by organization")
    table.add_column("Block", justify="right")
    for org in orgs:
        table.add_column(org)

    for index, views in matrix.items():
        cells = []
        for org in orgs:
            view = views[org]
            style = VISIBILITY_STYLE[view.visibility]
            cells.append(f"[{style}]{view.type}: {escape(view.content[:40])}[/]")
        table.add_row(str(index), *cells)

    console.print(table)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show ledger log messages"),
):
    """Proof-of-authority ledger for encrypted healthcare messages."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command()
def orgs(
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory URI (file:<path>, env:, or a JSON path)"),
):
    """List known organizations and whether they may append blocks."""
    try:
        org_directory = get_directory(directory)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Failed to load directory: {str(e)}[/]")
        raise typer.Exit(1)

    org_ids = sorted(org_directory.all_org_ids())
    if not org_ids:
        console.print("[yellow]No organizations found in directory.[/]")
        return

    table = Table(title="Organizations")
    table.add_column("Organization")
    table.add_column("Validator")
    table.add_column("Has key")
    for org_id in org_ids:
        table.add_row(
            org_id,
            "yes" if org_directory.is_validator(org_id) else "no",
            "yes" if org_directory.get_key(org_id) else "no",
        )
    console.print(table)


@app.command()
def chain(
    viewer: str = typer.Option("Public", "--viewer", help="Organization viewing the chain"),
    tamper: Optional[int] = typer.Option(None, "--tamper", help="Corrupt this block before reading"),
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory URI"),
    mode: Optional[str] = typer.Option(None, "--mode", help="Cipher mode: gcm (default) or cbc"),
):
    """Show the chain with content redacted for anyone but sender and recipient."""
    ledger = build_ledger(directory, mode, tamper)
    if as_json:
        typer.echo(json.dumps(ledger.get_chain(viewer).to_dict(), indent=2))
        return
    print_chain(ledger, viewer)


@app.command()
def verify(
    tamper: Optional[int] = typer.Option(None, "--tamper", help="Corrupt this block before verifying"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory URI"),
    mode: Optional[str] = typer.Option(None, "--mode", help="Cipher mode: gcm (default) or cbc"),
):
    """Verify hash integrity and linkage of every block."""
    ledger = build_ledger(directory, mode, tamper)
    if not print_validity(ledger):
        raise typer.Exit(1)


@app.command()
def access(
    tamper: Optional[int] = typer.Option(None, "--tamper", help="Corrupt this block before reading"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory URI"),
    mode: Optional[str] = typer.Option(None, "--mode", help="Cipher mode: gcm (default) or cbc"),
):
    """Show what every organization can read of every block."""
    ledger = build_ledger(directory, mode, tamper)
    print_access_matrix(ledger)


@app.command()
def add(
    sender: str = typer.Option(..., "--from", help="Sending (and authoring) organization"),
    recipient: str = typer.Option(..., "--to", help="Receiving organization"),
    msg_type: str = typer.Option(..., "--type", help="Message type, e.g. LAB_REQUEST"),
    content: str = typer.Option(..., "--content", help="Message content"),
    patient_id: Optional[str] = typer.Option(None, "--patient", help="Patient identifier"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory URI"),
    mode: Optional[str] = typer.Option(None, "--mode", help="Cipher mode: gcm (default) or cbc"),
):
    """Append one message on top of the sample episode and report the new block."""
    ledger = build_ledger(directory, mode)
    try:
        block = ledger.add_message(msg_type, sender, recipient, content, patient_id=patient_id)
    except LedgerError as e:
        console.print(f"[red]✗ Rejected: {escape(str(e))}[/]")
        raise typer.Exit(1)

    console.print(f"[green]✓ {sender} added block {block.index}[/]")
    console.print(f"  hash:     {block.hash[:12]}...")
    console.print(f"  previous: {block.previous_hash[:12]}...")
    print_validity(ledger)


@app.command()
def demo(
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory URI"),
    mode: Optional[str] = typer.Option(None, "--mode", help="Cipher mode: gcm (default) or cbc"),
):
    """Walk through authorized appends, a rejected append, tampering and access control."""
    console.print("[bold]🏥 Secure Data Sharing Blockchain[/]")
    ledger = build_ledger(directory, mode)
    console.print(f"[green]✓ Sample care episode recorded ({ledger.length - 1} messages)[/]")

    try:
        ledger.add_block({"type": "FAKE", "from": "Hacker", "to": "Hospital", "content": "Fake data"}, "Hacker")
    except LedgerError as e:
        console.print(f"[red]✗ {str(e)}[/]")

    print_validity(ledger)

    console.print("\n[yellow]⚠ Simulating tampering of block 1...[/]")
    ledger.corrupt_block(1)
    print_validity(ledger)

    console.print()
    print_access_matrix(ledger)


if __name__ == "__main__":
    app()
