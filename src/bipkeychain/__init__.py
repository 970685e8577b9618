"""bip-keychain - semantic hierarchical key derivation."""

__version__ = "0.1.0"
__author__ = "bip-keychain contributors"
__description__ = "Derive Ed25519 keys from semantic entities and one root secret"

# Make key modules available at package level
from . import lib
from . import cli

__all__ = ["lib", "cli"]
