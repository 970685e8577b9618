import click
from bip_utils import Bip39MnemonicGenerator, Bip39WordsNum

WORD_COUNTS = {
    12: Bip39WordsNum.WORDS_NUM_12,
    15: Bip39WordsNum.WORDS_NUM_15,
    18: Bip39WordsNum.WORDS_NUM_18,
    21: Bip39WordsNum.WORDS_NUM_21,
    24: Bip39WordsNum.WORDS_NUM_24,
}


@click.command("generate-seed")
@click.option(
    "-w",
    "--words",
    type=click.Choice([str(n) for n in WORD_COUNTS]),
    default="24",
    show_default=True,
    help="Number of words in the mnemonic.",
)
def generate_seed(words):
    """Generates a new BIP-39 seed phrase.

    Anyone with this phrase can derive every key in your keychain. Store it
    securely.
    """
    mnemonic = Bip39MnemonicGenerator().FromWordsNumber(WORD_COUNTS[int(words)])
    click.echo(
        "Seed phrase generated. Please back up your mnemonic phrase securely!",
        err=True,
    )
    click.echo(str(mnemonic))
