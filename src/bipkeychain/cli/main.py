import click

from bipkeychain import __version__
from bipkeychain.cli.derive import batch, derive, path
from bipkeychain.cli.seed import generate_seed


@click.group()
@click.version_option(__version__, prog_name="bip-keychain")
def cli():
    """Derive cryptographic keys from semantic entities.

    Keys are derived from human-readable JSON entities with BIP-32
    hierarchical deterministic derivation at m/83696968'/67797668'/{index}'.
    """
    pass


cli.add_command(derive)
cli.add_command(batch)
cli.add_command(path)
cli.add_command(generate_seed)


if __name__ == "__main__":
    cli()
