"""
Output formatting for derived keys.

Converts a DerivationRecord into the formats other tools consume:

- seed / private-key: 64 lowercase hex characters of the Ed25519 seed
- public-key: 64 lowercase hex characters
- ssh: ``ssh-ed25519 <base64> <purpose>`` authorized_keys line
- gpg: signing-key summary for manual import into GPG / git signing
- json: every field above plus metadata
- json-public: structured record without any private material
- pem: PKCS#8 private key

Only seed, private-key, json and pem contain private material.
"""

import json
from enum import Enum
from typing import Any, Dict, Union

from bipkeychain.lib.derivation import DerivationRecord
from bipkeychain.lib.errors import UnsupportedOutputFormat
from bipkeychain.lib.keypair import ssh_comment


class OutputFormat(str, Enum):
    SEED = "seed"
    PUBLIC_KEY = "public-key"
    PRIVATE_KEY = "private-key"
    SSH = "ssh"
    GPG = "gpg"
    JSON = "json"
    JSON_PUBLIC = "json-public"
    PEM = "pem"

    @property
    def includes_private_material(self) -> bool:
        return self in _PRIVATE_FORMATS


_PRIVATE_FORMATS = frozenset(
    {OutputFormat.SEED, OutputFormat.PRIVATE_KEY, OutputFormat.JSON, OutputFormat.PEM}
)


def resolve_output_format(name: Union[str, OutputFormat]) -> OutputFormat:
    """Map a format name to an OutputFormat."""
    if isinstance(name, OutputFormat):
        return name
    try:
        return OutputFormat(str(name).strip().lower())
    except ValueError:
        supported = ", ".join(f.value for f in OutputFormat)
        raise UnsupportedOutputFormat(
            f"unsupported output format {name!r} (expected one of: {supported})"
        )


def _public_fields(record: DerivationRecord) -> Dict[str, Any]:
    keypair = record.keypair
    return {
        "entity_id": record.entity_id,
        "schema_type": record.schema_type.value,
        "hash_function": record.hash_function.value,
        "derivation_path": record.derivation_path,
        "derivation_index": record.derivation_index,
        "ed25519_public_key": keypair.public_key_bytes.hex(),
        "ssh_public_key": keypair.ssh_public_key(record.purpose),
        "purpose": record.purpose,
        "metadata": record.metadata,
    }


def to_json_dict(record: DerivationRecord, include_private: bool = True) -> Dict[str, Any]:
    """Structured form of a record. Private fields only when requested."""
    data = _public_fields(record)
    if include_private:
        private_hex = record.keypair.private_key_bytes.hex()
        data["seed_hex"] = private_hex
        data["ed25519_private_key"] = private_hex
    else:
        data["ssh_fingerprint"] = record.keypair.ssh_fingerprint()
    return data


def gpg_summary(record: DerivationRecord) -> str:
    """Human-readable signing key summary for GPG / git signing setup."""
    keypair = record.keypair
    lines = [
        "GPG Ed25519 Public Key",
        "======================",
        f"Comment: {ssh_comment(record.purpose)}",
        f"Schema: {record.schema_type.value}",
        f"Derivation path: {record.derivation_path}",
        "",
        "Public Key (hex, 32 bytes):",
        keypair.public_key_bytes.hex(),
        "",
        f"SSH fingerprint: {keypair.ssh_fingerprint()}",
        "",
        "For Git signing with an SSH-format key:",
        "  git config --global gpg.format ssh",
        "  git config --global user.signingkey "
        f"'{keypair.ssh_public_key(record.purpose)}'",
        "  git config --global commit.gpgsign true",
    ]
    return "\n".join(lines)


def format_record(
    record: DerivationRecord, output_format: Union[str, OutputFormat]
) -> str:
    """
    Render a derivation record.

    Args:
        record: Derived record
        output_format: Format name or OutputFormat member

    Returns:
        Rendered text (no trailing newline)

    Raises:
        UnsupportedOutputFormat: For unknown format names
    """
    try:
        fmt = resolve_output_format(output_format)
    except UnsupportedOutputFormat as e:
        raise e.with_context(entity_id=record.entity_id)

    keypair = record.keypair
    if fmt is OutputFormat.SEED or fmt is OutputFormat.PRIVATE_KEY:
        return keypair.private_key_bytes.hex()
    if fmt is OutputFormat.PUBLIC_KEY:
        return keypair.public_key_bytes.hex()
    if fmt is OutputFormat.SSH:
        return keypair.ssh_public_key(record.purpose)
    if fmt is OutputFormat.GPG:
        return gpg_summary(record)
    if fmt is OutputFormat.JSON:
        return json.dumps(to_json_dict(record, include_private=True), indent=2)
    if fmt is OutputFormat.JSON_PUBLIC:
        return json.dumps(to_json_dict(record, include_private=False), indent=2)
    if fmt is OutputFormat.PEM:
        return keypair.private_key_pem().rstrip("\n")
    raise UnsupportedOutputFormat(f"unhandled output format {fmt.value!r}")
