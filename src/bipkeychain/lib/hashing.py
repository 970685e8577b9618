"""
Hash selection and index extraction.

Every hash function returns exactly 64 bytes so the rest of the pipeline is
hash-agnostic:

- hmac_sha512: HMAC-SHA-512 keyed with the root secret (default, BIP-85 style)
- blake2b: unkeyed BLAKE2b-512, for ecosystems that exchange entities
  without a shared secret
- sha256: SHA-256 right-padded with zeros to 64 bytes, for legacy tooling

The derivation index is the big-endian uint32 of the first four digest bytes.
"""

import hashlib
import hmac
from typing import Union

from bipkeychain.config import DIGEST_SIZE
from bipkeychain.lib.errors import MalformedEntity, UnsupportedHashFunction
from bipkeychain.models import HashFunction


def resolve_hash_function(name: Union[str, HashFunction]) -> HashFunction:
    """Map a wire name or enum member to a HashFunction. Names are exact."""
    if isinstance(name, HashFunction):
        return name
    try:
        return HashFunction(name)
    except ValueError:
        supported = ", ".join(fn.value for fn in HashFunction)
        raise UnsupportedHashFunction(
            f"unsupported hash function {name!r} (expected one of: {supported})"
        )


def hmac_sha512(data: bytes, key: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha512).digest()


def blake2b_512(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=64).digest()


def sha256_padded(data: bytes) -> bytes:
    return hashlib.sha256(data).digest().ljust(DIGEST_SIZE, b"\x00")


def hash_entity(
    canonical_bytes: bytes, root_secret: bytes, hash_function: HashFunction
) -> bytes:
    """
    Compute the 64-byte digest of canonical entity bytes.

    Args:
        canonical_bytes: Output of the canonicalizer
        root_secret: Session root secret, used as the HMAC key
        hash_function: Selected hash function

    Returns:
        64-byte digest
    """
    if hash_function is HashFunction.HMAC_SHA512:
        digest = hmac_sha512(canonical_bytes, root_secret)
    elif hash_function is HashFunction.BLAKE2B:
        digest = blake2b_512(canonical_bytes)
    elif hash_function is HashFunction.SHA256:
        digest = sha256_padded(canonical_bytes)
    else:
        raise UnsupportedHashFunction(f"unsupported hash function {hash_function!r}")

    return digest


def hash_to_index(digest: bytes) -> int:
    """Big-endian uint32 from the first four digest bytes."""
    if len(digest) < 4:
        raise MalformedEntity(
            f"digest too short for index extraction ({len(digest)} bytes)",
            stage="index",
        )
    return int.from_bytes(digest[:4], "big")
