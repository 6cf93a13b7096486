"""
CLI for writing, reading and verifying sequenced messages and processes.
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from sequencer import flows
from sequencer.clients.wallet import FileWallet
from sequencer.config import Settings
from sequencer.core.errors import ErrorKind, SequencerError
from sequencer.core.sorting import SortedMessages
from sequencer.flows import Deps
from sequencer.log import configure_logging
from sequencer.verify.verifier import MessageVerifier

app = typer.Typer(
    name="sequencer",
    help="Sign, commit and index messages and processes; read them back in order",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

EXIT_CODES = {
    ErrorKind.INPUT: 2,
    ErrorKind.DEPENDENCY: 3,
    ErrorKind.SERIALIZATION: 4,
    ErrorKind.PARTIAL_FAILURE: 5,
    ErrorKind.NOT_FOUND: 6,
}


def fail(error: SequencerError) -> None:
    typer.echo(flows.render_error(error))
    raise typer.Exit(EXIT_CODES[error.kind])


def resolve_db(ctx: typer.Context, db: Optional[Path]) -> Optional[Path]:
    """A --db given after the command wins over one given before it."""
    if db is not None:
        return db
    return (ctx.obj or {}).get("db")


def load_deps(db: Optional[Path]) -> Deps:
    """Build the shared context once for this invocation. Exits on bad config."""
    try:
        settings = Settings.from_env(db_path=db.resolve() if db else None)
        configure_logging(settings.log_level, settings.log_format)
        return Deps.from_settings(settings)
    except SequencerError as e:
        fail(e)


def run(db: Optional[Path], op: Callable[[Deps], Awaitable[str]]) -> None:
    deps = load_deps(db)
    try:
        typer.echo(asyncio.run(op(deps)))
    except SequencerError as e:
        fail(e)
    finally:
        deps.store.close()


def read_input(path: Path) -> bytes:
    if str(path) == "-":
        return typer.get_binary_stream("stdin").read()
    try:
        return path.read_bytes()
    except OSError as e:
        console.print(f"[red]Cannot read {path}: {e.strerror}[/]")
        raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to SQLite index (overrides SEQUENCER_DB_PATH env var)",
    ),
):
    """Sequence messages and processes onto the ledger."""
    ctx.obj = {"db": db}


@app.command("write-message")
def write_message(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="JSON data item to submit ('-' for stdin)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Sign a message, commit it to the ledger and index it. Prints the receipt."""
    raw = read_input(file)
    run(resolve_db(ctx, db), lambda deps: flows.write_message(deps, raw))


@app.command("write-process")
def write_process(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="JSON data item to submit ('-' for stdin)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Sign a process definition, commit it to the ledger and index it. Prints the receipt."""
    raw = read_input(file)
    run(resolve_db(ctx, db), lambda deps: flows.write_process(deps, raw))


@app.command()
def messages(
    ctx: typer.Context,
    process_id: str = typer.Argument(..., help="Process ID whose messages to list"),
    from_: Optional[str] = typer.Option(None, "--from", help="First sequence key (inclusive)"),
    to: Optional[str] = typer.Option(None, "--to", help="Last sequence key (inclusive)"),
    table: bool = typer.Option(False, "--table", help="Show a table instead of JSON"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List the messages of a process in sequence order."""
    if not table:
        run(resolve_db(ctx, db), lambda deps: flows.read_messages(deps, process_id, from_, to))
        return

    deps = load_deps(resolve_db(ctx, db))
    try:
        ordered = SortedMessages.from_messages(deps.store.get_messages(process_id), from_, to)
    except SequencerError as e:
        fail(e)
    finally:
        deps.store.close()

    if not len(ordered):
        console.print(f"[yellow]No messages found for process '{process_id}'[/]")
        return

    out = Table(title=f"Messages of {process_id}")
    out.add_column("Sequence Key")
    out.add_column("Message ID")
    out.add_column("Payload")
    for msg in ordered:
        payload = msg.payload[:60] + ("..." if len(msg.payload) > 60 else "")
        out.add_row(msg.sequence_key, msg.id, payload)
    console.print(out)
    console.print(f"{len(ordered)} messages, cursors {ordered.first_cursor} → {ordered.last_cursor}")


@app.command()
def message(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message ID"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show one message as JSON."""
    run(resolve_db(ctx, db), lambda deps: flows.read_message(deps, message_id))


@app.command()
def process(
    ctx: typer.Context,
    process_id: str = typer.Argument(..., help="Process ID"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show one process as JSON."""
    run(resolve_db(ctx, db), lambda deps: flows.read_process(deps, process_id))


@app.command()
def timestamp(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Print local time (ms) and the current ledger height."""
    run(resolve_db(ctx, db), flows.timestamp)


@app.command()
def processes(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List all locally indexed processes with message counts and latest sequence key."""
    deps = load_deps(resolve_db(ctx, db))
    try:
        process_ids = deps.store.list_processes()
        if not process_ids:
            console.print("[yellow]No processes found in the index.[/]")
            return

        table = Table(title="Indexed Processes")
        table.add_column("Process ID")
        table.add_column("Messages")
        table.add_column("Latest Sequence Key")

        for pid in process_ids:
            count = deps.store.get_message_count(pid)
            latest = deps.store.get_latest_sequence_key(pid) or "-"
            table.add_row(pid, str(count), latest)

        console.print(table)
    except SequencerError as e:
        fail(e)
    finally:
        deps.store.close()


@app.command()
def verify(
    ctx: typer.Context,
    process_id: str = typer.Argument(..., help="Process ID to verify"),
    trust: List[str] = typer.Option([], "--trust", help="Trusted owner public key (repeatable)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Verify signatures, ids and ordering of a process's indexed messages."""
    deps = load_deps(resolve_db(ctx, db))

    if not trust:
        console.print("[yellow]Warning: No trusted owners given, any valid signer is accepted.[/]")

    verifier = MessageVerifier(deps.signer, trusted_owners=trust)
    try:
        result = verifier.verify_from_storage(process_id, deps.store)
    finally:
        deps.store.close()

    if result.is_valid:
        console.print(f"[green]✓ Process '{process_id}' is valid[/]")
        console.print(f"  {result.message}")
    else:
        console.print(f"[red]✗ Verification failed for process '{process_id}'[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}")
        raise typer.Exit(1)


@app.command()
def reindex(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Bundle binary fetched from the ledger ('-' for stdin)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Index a bundle that is already on the ledger (recovers a partial failure)."""
    binary = read_input(file)
    run(resolve_db(ctx, db), lambda deps: flows.reindex(deps, binary))


@app.command()
def keygen(
    path: Path = typer.Argument(..., help="Where to write the new Ed25519 wallet (PEM)"),
):
    """Generate a wallet file for SU_WALLET_PATH."""
    try:
        wallet = FileWallet.create(path)
    except SequencerError as e:
        fail(e)
    console.print(f"[green]Wallet written to {path}[/]")
    console.print(f"Owner: {wallet.key_pair().public_key_b64url()}")


if __name__ == "__main__":
    app()
