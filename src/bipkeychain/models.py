from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel


class SchemaType(str, Enum):
    """Kinds of semantic entity a key can be derived from."""

    SCHEMA_ORG = "schema_org"
    DNS = "dns"
    X500_DN = "x500_dn"
    DID = "did"
    IPFS_CID = "ipfs_cid"
    VERIFIABLE_CREDENTIAL = "verifiable_credential"
    GORDIAN_ENVELOPE = "gordian_envelope"
    CUSTOM = "custom"


class HashFunction(str, Enum):
    """Hash applied to the canonical entity bytes. Closed set."""

    HMAC_SHA512 = "hmac_sha512"
    BLAKE2B = "blake2b"
    SHA256 = "sha256"


class DerivationConfig(BaseModel):
    """How an entity's digest is computed and whether its leaf is hardened."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    hash_function: HashFunction = Field(
        HashFunction.HMAC_SHA512,
        description="Hash function used for the entity -> index conversion.",
    )
    hardened: bool = Field(
        True, description="Use hardened derivation for the entity level."
    )


class KeyDerivation(BaseModel):
    """
    A complete key derivation document.

    Only ``entity`` is hashed. ``purpose`` and ``metadata`` are descriptive
    labels and can be edited without rotating the derived key.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    schema_type: SchemaType = Field(..., description="Entity schema discriminator.")
    entity: Dict[str, Any] = Field(
        ..., description="Schema-specific payload; canonicalized and hashed."
    )
    derivation_config: DerivationConfig = Field(
        ...,
        description="Hash function and hardening policy.",
    )
    purpose: Optional[str] = Field(
        None, description="Human-facing purpose, used as the SSH key comment."
    )
    metadata: Optional[Dict[str, Any]] = Field(
        None, description="Passthrough metadata, never hashed."
    )


class KeychainEnvelope(BaseModel):
    """Object form of a keychain document: ``{"keys": [...]}``."""

    keys: List[Any]


class Keychain(RootModel[Union[List[Any], KeychainEnvelope]]):
    """A keychain document: an array of entity documents or a ``keys`` envelope."""

    @property
    def entries(self) -> List[Any]:
        if isinstance(self.root, KeychainEnvelope):
            return list(self.root.keys)
        return list(self.root)
