"""
Core bip-keychain derivation.

Implements the entity -> keypair pipeline:

1. Canonicalize the entity payload
2. Hash it with the configured function
3. Take the first 4 digest bytes as a big-endian uint32 index
4. Derive the BIP-32 node at m/83696968'/67797668'/{index}'
5. Expand the node's key material into an Ed25519 keypair

Everything runs inside a KeychainSession, which owns the root secret and
wipes it when the session ends.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from bip_utils import Bip39MnemonicValidator, Bip39SeedGenerator
from pydantic import ValidationError

from bipkeychain.config import MAX_DERIVATION_DEPTH
from bipkeychain.lib.canonical import canonical_entity_bytes, check_labels, entity_id
from bipkeychain.lib.errors import DerivationError, InvalidSeed, MalformedEntity
from bipkeychain.lib.hashing import hash_entity, hash_to_index, resolve_hash_function
from bipkeychain.lib.key_tree import KeyNode, KeyTreeDeriver, master_node
from bipkeychain.lib.keypair import Ed25519KeyPair
from bipkeychain.lib.logs import get_logger, log
from bipkeychain.lib.secure import SecureBytes
from bipkeychain.models import HashFunction, KeyDerivation, SchemaType

_logger = get_logger("derivation")

EntityDocument = Union[KeyDerivation, Mapping[str, Any], str, bytes]


@dataclass
class DerivationRecord:
    """Result of deriving one entity."""

    entity_id: str
    schema_type: SchemaType
    keypair: Ed25519KeyPair
    hash_function: HashFunction
    derivation_index: int
    derivation_path: str
    hardened: bool = True
    purpose: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = field(default=None)

    def wipe(self):
        self.keypair.wipe()


def _hash_function_error(error: ValidationError) -> Optional[Dict[str, Any]]:
    """Return the error detail if validation failed on hash_function."""
    for detail in error.errors():
        if tuple(detail.get("loc", ())) == ("derivation_config", "hash_function"):
            return detail
    return None


def parse_entity(document: EntityDocument) -> KeyDerivation:
    """
    Parse an entity document into a KeyDerivation.

    Args:
        document: A KeyDerivation, a mapping, or JSON text/bytes

    Raises:
        MalformedEntity: If the document is not valid JSON or fails validation
        UnsupportedHashFunction: If derivation_config names an unknown hash
    """
    if isinstance(document, KeyDerivation):
        return document

    try:
        if isinstance(document, (str, bytes, bytearray)):
            return KeyDerivation.model_validate_json(document)
        return KeyDerivation.model_validate(document)
    except ValidationError as e:
        hash_error = _hash_function_error(e)
        if hash_error is not None:
            # Rejected by the model, so this raises UnsupportedHashFunction.
            resolve_hash_function(hash_error.get("input"))
        raise MalformedEntity(f"invalid entity document: {e}")


class KeychainSession:
    """
    A derivation session bound to one root secret.

    The root secret is copied into wipeable memory and the master node and
    namespace node are computed once up front, so an invalid secret fails
    here, before any entity is touched. Leaving the ``with`` block (normally
    or through an exception) wipes the secret.

    Example:
        with KeychainSession(root_secret) as session:
            record = session.derive(entity_json)
    """

    def __init__(self, root_secret: bytes, max_depth: int = MAX_DERIVATION_DEPTH):
        self._secret: Optional[SecureBytes] = SecureBytes(root_secret)
        try:
            master = master_node(self._secret.get_bytes())
            self._tree = KeyTreeDeriver(master, max_depth=max_depth)
            self._namespace: KeyNode = self._tree.derive_namespace()
        except BaseException:
            self.close()
            raise
        log(_logger, "debug", "Opened keychain session", namespace=self._namespace.path)

    @classmethod
    def from_mnemonic(
        cls, mnemonic: str, passphrase: str = "", **kwargs
    ) -> "KeychainSession":
        """
        Open a session from a BIP-39 mnemonic phrase.

        Raises:
            InvalidSeed: If the phrase is not a valid BIP-39 mnemonic
        """
        return cls(root_secret_from_mnemonic(mnemonic, passphrase), **kwargs)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def closed(self) -> bool:
        return self._secret is None

    @property
    def tree(self) -> KeyTreeDeriver:
        self._check_open()
        return self._tree

    def close(self):
        """Wipe the root secret. Safe to call more than once."""
        if self._secret is not None:
            self._secret.wipe()
            self._secret = None
            log(_logger, "debug", "Closed keychain session")

    def _check_open(self):
        if self._secret is None:
            raise RuntimeError("KeychainSession has been closed")

    def digest(self, canonical_bytes: bytes, hash_function: HashFunction) -> bytes:
        self._check_open()
        if hash_function is HashFunction.HMAC_SHA512:
            return hash_entity(canonical_bytes, self._secret.get_bytes(), hash_function)
        return hash_entity(canonical_bytes, b"", hash_function)

    def entity_index(self, key_derivation: KeyDerivation) -> int:
        """DerivationIndex for an entity, before any hardening."""
        canonical = canonical_entity_bytes(key_derivation)
        return hash_to_index(
            self.digest(canonical, key_derivation.derivation_config.hash_function)
        )

    def derive(self, document: EntityDocument) -> DerivationRecord:
        """
        Derive the keypair for one entity document.

        Args:
            document: Entity document (KeyDerivation, mapping or JSON text)

        Returns:
            DerivationRecord holding the keypair and metadata

        Raises:
            DerivationError: Subclass naming the failing stage
        """
        self._check_open()
        eid = None
        try:
            key_derivation = parse_entity(document)
            config = key_derivation.derivation_config

            canonical = canonical_entity_bytes(key_derivation)
            eid = entity_id(canonical)
            check_labels(key_derivation)

            digest = self.digest(canonical, config.hash_function)
            index = hash_to_index(digest)

            leaf = self._tree.derive_entity_node(
                index, hardened=config.hardened, namespace=self._namespace
            )
            keypair = Ed25519KeyPair.from_seed(leaf.key_material)
        except DerivationError as e:
            log(
                _logger,
                "warning",
                "Entity derivation failed",
                entity_id=eid or e.entity_id,
                stage=e.stage,
                error=e.message,
            )
            raise e.with_context(entity_id=eid)

        log(
            _logger,
            "info",
            "Derived entity key",
            entity_id=eid,
            schema_type=key_derivation.schema_type.value,
            hash_function=config.hash_function.value,
            path=leaf.path,
        )
        return DerivationRecord(
            entity_id=eid,
            schema_type=key_derivation.schema_type,
            keypair=keypair,
            hash_function=config.hash_function,
            derivation_index=index,
            derivation_path=leaf.path,
            hardened=config.hardened,
            purpose=key_derivation.purpose,
            metadata=key_derivation.metadata,
        )


def root_secret_from_mnemonic(mnemonic: str, passphrase: str = "") -> bytes:
    """
    Reduce a BIP-39 mnemonic to the 64-byte root secret.

    Raises:
        InvalidSeed: If the mnemonic fails BIP-39 validation
    """
    phrase = " ".join(mnemonic.split())
    if not Bip39MnemonicValidator().IsValid(phrase):
        raise InvalidSeed("invalid BIP-39 mnemonic")
    return Bip39SeedGenerator(phrase).Generate(passphrase)


def derive_key_from_entity(
    root_secret: bytes, document: EntityDocument
) -> DerivationRecord:
    """One-shot derivation: opens a session, derives, and wipes the secret."""
    with KeychainSession(root_secret) as session:
        return session.derive(document)


def load_entity_file(text: str) -> Dict[str, Any]:
    """Parse entity JSON text into a plain mapping."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedEntity(f"invalid JSON: {e}")
    except RecursionError:
        raise MalformedEntity("entity document is nested too deeply")
    if not isinstance(data, dict):
        raise MalformedEntity("entity document must be a JSON object")
    return data
