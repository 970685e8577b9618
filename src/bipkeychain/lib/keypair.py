"""
Ed25519 keypairs expanded from derived key material.

The leaf key material is used directly as the RFC 8032 private seed, so the
same 32 bytes always yield the same keypair and no randomness is added here.
"""

import base64
import hashlib
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from bipkeychain.config import DEFAULT_SSH_COMMENT, ED25519_SEED_SIZE
from bipkeychain.lib.errors import KeyExpansionError
from bipkeychain.lib.secure import SecureBytes


def ssh_comment(purpose: Optional[str]) -> str:
    """SSH comment for a purpose string, kept on a single line."""
    if purpose is None:
        return DEFAULT_SSH_COMMENT
    comment = " ".join(purpose.split())
    return comment or DEFAULT_SSH_COMMENT


class Ed25519KeyPair:
    """
    An Ed25519 keypair whose private seed lives in wipeable memory.

    Use as a context manager, or call wipe(), to zero the private seed once
    the keypair is no longer needed.
    """

    def __init__(self, seed: bytes):
        if len(seed) != ED25519_SEED_SIZE:
            raise KeyExpansionError(
                f"Ed25519 seed must be {ED25519_SEED_SIZE} bytes, got {len(seed)}"
            )
        try:
            signing_key = ed25519.Ed25519PrivateKey.from_private_bytes(bytes(seed))
        except ValueError as e:
            raise KeyExpansionError(f"cannot expand key material: {e}")

        self._seed = SecureBytes(seed)
        self._public_key = signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def from_seed(cls, seed: bytes) -> "Ed25519KeyPair":
        return cls(seed)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.wipe()

    def wipe(self):
        self._seed.wipe()

    @property
    def wiped(self) -> bool:
        return self._seed.wiped

    @property
    def public_key_bytes(self) -> bytes:
        return self._public_key

    @property
    def private_key_bytes(self) -> bytes:
        """Copy of the 32-byte private seed. Raises RuntimeError once wiped."""
        return self._seed.get_bytes()

    def _signing_key(self) -> ed25519.Ed25519PrivateKey:
        return ed25519.Ed25519PrivateKey.from_private_bytes(self._seed.get_bytes())

    def public_key(self) -> ed25519.Ed25519PublicKey:
        return ed25519.Ed25519PublicKey.from_public_bytes(self._public_key)

    def sign(self, message: bytes) -> bytes:
        return self._signing_key().sign(message)

    def verify(self, signature: bytes, message: bytes) -> bool:
        try:
            self.public_key().verify(signature, message)
            return True
        except InvalidSignature:
            return False

    def _openssh_public_line(self) -> str:
        return (
            self.public_key()
            .public_bytes(
                encoding=serialization.Encoding.OpenSSH,
                format=serialization.PublicFormat.OpenSSH,
            )
            .decode("ascii")
        )

    def ssh_public_key(self, comment: Optional[str] = None) -> str:
        """Single-line authorized_keys entry: ``ssh-ed25519 <base64> <comment>``."""
        return f"{self._openssh_public_line()} {ssh_comment(comment)}"

    def ssh_fingerprint(self) -> str:
        """OpenSSH SHA256 fingerprint, as printed by ``ssh-keygen -l``."""
        blob = base64.b64decode(self._openssh_public_line().split(" ")[1])
        digest = hashlib.sha256(blob).digest()
        return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")

    def private_key_pem(self) -> str:
        """Unencrypted PKCS#8 PEM block, accepted by openssl and ssh-keygen."""
        pem = self._signing_key().private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return pem.decode("ascii")

    def __repr__(self) -> str:
        return f"Ed25519KeyPair(public_key={self._public_key.hex()})"
