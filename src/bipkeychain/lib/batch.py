"""
Batch derivation across a keychain.

Each entity is derived independently on a worker thread. Results are tagged
with their input position and reassembled in input order once all workers
finish. A DerivationError for one entity is stored in that entity's slot and
does not stop the others; any other exception propagates to the caller.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Union

from pydantic import ValidationError

from bipkeychain.config import DEFAULT_BATCH_WORKERS
from bipkeychain.lib.derivation import (
    DerivationRecord,
    EntityDocument,
    KeychainSession,
)
from bipkeychain.lib.errors import DerivationError, MalformedEntity
from bipkeychain.lib.logs import get_logger, log
from bipkeychain.lib.output import OutputFormat, format_record
from bipkeychain.models import Keychain

_logger = get_logger("batch")


@dataclass
class DerivationResult:
    """Outcome of one entity in a batch: either a record or an error."""

    position: int
    record: Optional[DerivationRecord] = None
    error: Optional[DerivationError] = None
    output: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def entity_id(self) -> Optional[str]:
        if self.record is not None:
            return self.record.entity_id
        return self.error.entity_id if self.error is not None else None

    def unwrap(self) -> DerivationRecord:
        """Return the record or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.record

    def wipe(self):
        if self.record is not None:
            self.record.wipe()


def load_keychain(text: Union[str, bytes]) -> List[Any]:
    """
    Split a keychain document into its raw entries.

    Entries are not validated here, so one malformed entity only fails its
    own slot when the batch runs.

    Raises:
        MalformedEntity: If the document itself is not a keychain
    """
    try:
        keychain = Keychain.model_validate_json(text)
    except ValidationError as e:
        raise MalformedEntity(f"invalid keychain document: {e}", stage="load")
    return keychain.entries


def _derive_one(
    session: KeychainSession,
    position: int,
    document: EntityDocument,
    output_format: Optional[Union[str, OutputFormat]],
) -> DerivationResult:
    try:
        record = session.derive(document)
    except DerivationError as e:
        if e.entity_id is None:
            e.entity_id = f"#{position}"
        return DerivationResult(position=position, error=e)

    result = DerivationResult(position=position, record=record)
    if output_format is not None:
        try:
            result.output = format_record(record, output_format)
        except DerivationError as e:
            result.error = e
    return result


def derive_batch(
    session: KeychainSession,
    documents: Sequence[EntityDocument],
    output_format: Optional[Union[str, OutputFormat]] = None,
    max_workers: Optional[int] = None,
) -> List[DerivationResult]:
    """
    Derive every entity in ``documents`` with one session.

    Args:
        session: Open KeychainSession (validated root secret)
        documents: Entity documents, in keychain order
        output_format: Optional format to render each successful record
        max_workers: Worker threads (default DEFAULT_BATCH_WORKERS)

    Returns:
        One DerivationResult per input, in input order
    """
    if session.closed:
        raise RuntimeError("KeychainSession has been closed")

    documents = list(documents)
    results: List[Optional[DerivationResult]] = [None] * len(documents)
    workers = max_workers or DEFAULT_BATCH_WORKERS

    log(_logger, "info", "Starting batch derivation", entities=len(documents), workers=workers)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(_derive_one, session, position, document, output_format)
            for position, document in enumerate(documents)
        ]
        for future in futures:
            result = future.result()
            results[result.position] = result

    failures = sum(1 for r in results if not r.ok)
    log(
        _logger,
        "warning" if failures else "info",
        "Finished batch derivation",
        entities=len(results),
        failed=failures,
    )
    return results


def derive_keychain(
    root_secret: bytes,
    keychain_json: Union[str, bytes],
    output_format: Optional[Union[str, OutputFormat]] = None,
    max_workers: Optional[int] = None,
) -> List[DerivationResult]:
    """
    Derive a whole keychain document from a root secret.

    InvalidSeed is raised before the keychain document is read. The root
    secret is wiped when this returns or raises.
    """
    with KeychainSession(root_secret) as session:
        documents = load_keychain(keychain_json)
        return derive_batch(
            session, documents, output_format=output_format, max_workers=max_workers
        )


def results_to_json(results: Sequence[DerivationResult]) -> str:
    """Summarize batch results without private material."""
    summary = []
    for result in results:
        item = {"position": result.position, "ok": result.ok, "entity_id": result.entity_id}
        if result.record is not None:
            item["derivation_path"] = result.record.derivation_path
            item["ed25519_public_key"] = result.record.keypair.public_key_bytes.hex()
        if result.error is not None:
            item["error"] = {
                "type": type(result.error).__name__,
                "stage": result.error.stage,
                "message": result.error.message,
            }
        summary.append(item)
    return json.dumps(summary, indent=2)
