"""
Error taxonomy for bip-keychain derivation.

Per-entity errors derive from DerivationError and carry the entity
identifier and the pipeline stage that failed, so the batch orchestrator can
attach them to a single result slot. InvalidSeed is session-level: without a
master key no entity can be derived.
"""

from typing import Optional


class BipKeychainError(Exception):
    """Base exception for bip-keychain errors"""

    pass


class InvalidSeed(BipKeychainError):
    """The root secret cannot seed a BIP-32 master key"""

    pass


class DerivationError(BipKeychainError):
    """Base exception for errors scoped to a single entity"""

    stage = "derive"

    def __init__(
        self,
        message: str,
        entity_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id
        if stage is not None:
            self.stage = stage

    def with_context(
        self, entity_id: Optional[str] = None, stage: Optional[str] = None
    ) -> "DerivationError":
        """Fill in context that was unknown where the error was raised."""
        if self.entity_id is None and entity_id is not None:
            self.entity_id = entity_id
        if stage is not None and self.stage == type(self).stage:
            self.stage = stage
        return self

    def __str__(self) -> str:
        entity = self.entity_id if self.entity_id is not None else "<unknown>"
        return f"[{self.stage}] entity {entity}: {self.message}"


class MalformedEntity(DerivationError):
    """Entity document is unparsable or cannot be canonicalized"""

    stage = "parse"


class UnsupportedHashFunction(DerivationError):
    """Derivation config names a hash function outside the supported set"""

    stage = "hash"


class UnsupportedOutputFormat(DerivationError):
    """Unknown output format name"""

    stage = "encode"


class DerivationDepthExceeded(DerivationError):
    """Key tree asked to derive below its maximum depth"""

    stage = "tree"


class KeyExpansionError(DerivationError):
    """Leaf key material cannot be expanded into an Ed25519 keypair"""

    stage = "keypair"
