import json
import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from bipkeychain.config import DEFAULT_BATCH_WORKERS, PASSPHRASE_ENV_VAR, SEED_ENV_VAR
from bipkeychain.lib.batch import derive_batch, load_keychain, results_to_json
from bipkeychain.lib.derivation import KeychainSession, load_entity_file, parse_entity
from bipkeychain.lib.errors import DerivationError, InvalidSeed
from bipkeychain.lib.key_tree import entity_path
from bipkeychain.lib.output import OutputFormat, format_record

FORMAT_CHOICES = [f.value for f in OutputFormat]


def open_session_from_env() -> KeychainSession:
    """Open a session from the mnemonic in BIP_KEYCHAIN_SEED."""
    mnemonic = os.environ.get(SEED_ENV_VAR)
    if not mnemonic:
        raise click.ClickException(
            f"{SEED_ENV_VAR} environment variable not set.\n"
            f'Set your BIP-39 seed phrase: export {SEED_ENV_VAR}="your twelve word phrase..."\n'
            "The seed phrase is read from the environment rather than from "
            "command-line arguments, which would be visible in process listings."
        )
    passphrase = os.environ.get(PASSPHRASE_ENV_VAR, "")
    try:
        return KeychainSession.from_mnemonic(mnemonic, passphrase)
    except InvalidSeed as e:
        raise click.ClickException(
            f"Failed to create keychain from seed phrase: {e}. "
            f"Ensure {SEED_ENV_VAR} contains a valid BIP-39 mnemonic (12-24 words)."
        )


def _warn_private(fmt: OutputFormat):
    if fmt.includes_private_material:
        click.echo(
            f"Warning: format '{fmt.value}' prints private key material.", err=True
        )


def _read_entity(entity_file: str):
    try:
        return load_entity_file(Path(entity_file).read_text(encoding="utf-8"))
    except DerivationError as e:
        raise click.ClickException(f"Failed to parse entity {entity_file}: {e}")


@click.command("derive")
@click.argument("entity_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(FORMAT_CHOICES),
    default=OutputFormat.SEED.value,
    show_default=True,
    help="Output format.",
)
def derive(entity_file, output_format):
    """Derive a key from an entity JSON file.

    The seed phrase must be provided via the BIP_KEYCHAIN_SEED environment
    variable.
    """
    fmt = OutputFormat(output_format)
    document = _read_entity(entity_file)

    with open_session_from_env() as session:
        try:
            record = session.derive(document)
        except DerivationError as e:
            raise click.ClickException(f"Failed to derive key from {entity_file}: {e}")
        try:
            _warn_private(fmt)
            click.echo(format_record(record, fmt))
        finally:
            record.wipe()


@click.command("path")
@click.argument("entity_file", type=click.Path(exists=True, dir_okay=False))
def path(entity_file):
    """Print the derivation path of an entity without deriving its key."""
    document = _read_entity(entity_file)

    with open_session_from_env() as session:
        try:
            key_derivation = parse_entity(document)
            index = session.entity_index(key_derivation)
        except DerivationError as e:
            raise click.ClickException(f"Failed to index {entity_file}: {e}")
    click.echo(entity_path(index, key_derivation.derivation_config.hardened))


def _render_summary(results, sources):
    table = Table(title="bip-keychain batch")
    table.add_column("#", justify="right")
    table.add_column("Source")
    table.add_column("Entity")
    table.add_column("Result")

    for result in results:
        if result.ok:
            status = f"[green]ok[/green] {result.record.derivation_path}"
        else:
            status = f"[red]{type(result.error).__name__}[/red] ({result.error.stage})"
        table.add_row(
            str(result.position),
            sources[result.position],
            result.entity_id or "-",
            status,
        )
    Console(stderr=True).print(table)


def _collect_documents(files):
    """Each file holds one entity or a keychain (array or {"keys": [...]})."""
    documents, sources = [], []
    for entity_file in files:
        text = Path(entity_file).read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, RecursionError):
            # Left for the batch to report as a MalformedEntity in its own slot.
            data = None

        if isinstance(data, list) or (
            isinstance(data, dict) and "keys" in data and "schema_type" not in data
        ):
            try:
                entries = load_keychain(text)
            except DerivationError as e:
                raise click.ClickException(f"Failed to load keychain {entity_file}: {e}")
            documents.extend(entries)
            sources.extend(f"{entity_file}[{i}]" for i in range(len(entries)))
        else:
            documents.append(text)
            sources.append(entity_file)
    return documents, sources


@click.command("batch")
@click.argument(
    "files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False)
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(FORMAT_CHOICES),
    default=OutputFormat.SSH.value,
    show_default=True,
    help="Output format.",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, dir_okay=True, writable=True),
    help="Write one file per entity instead of printing to stdout.",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=DEFAULT_BATCH_WORKERS,
    show_default=True,
    help="Worker threads.",
)
@click.option(
    "--summary",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
    help="Summary written to stderr after the batch.",
)
def batch(files, output_format, output_dir: Optional[str], workers, summary):
    """Derive keys for many entity or keychain files in one session."""
    fmt = OutputFormat(output_format)
    documents, sources = _collect_documents(files)

    with open_session_from_env() as session:
        results = derive_batch(session, documents, output_format=fmt, max_workers=workers)

    _warn_private(fmt)
    out_dir = Path(output_dir) if output_dir else None
    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)

    try:
        for result in results:
            if not result.ok:
                click.echo(f"Error: {sources[result.position]}: {result.error}", err=True)
                continue
            if out_dir is None:
                click.echo(result.output)
            else:
                target = out_dir / f"{result.entity_id}.{_extension(fmt)}"
                target.write_text(result.output + "\n", encoding="utf-8")
                if fmt.includes_private_material:
                    target.chmod(0o600)
    finally:
        for result in results:
            result.wipe()

    if summary == "json":
        click.echo(results_to_json(results), err=True)
    else:
        _render_summary(results, sources)
    if any(not r.ok for r in results):
        sys.exit(1)


def _extension(fmt: OutputFormat) -> str:
    return {
        OutputFormat.SSH: "pub",
        OutputFormat.JSON: "json",
        OutputFormat.JSON_PUBLIC: "json",
        OutputFormat.PEM: "pem",
        OutputFormat.GPG: "txt",
    }.get(fmt, "hex")
