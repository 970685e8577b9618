"""
BIP-32 key tree for bip-keychain.

Keys are derived at the fixed-shape path::

    m/83696968'/67797668'/{entity_index}'

The two leading levels are hardened application constants that keep this
scheme apart from other HD uses of the same root secret. The entity level is
hardened unless the entity's derivation config opts out.

Index policy is total over uint32. A hardened child index is
``(index & 0x7FFFFFFF) | 0x80000000``: the top bit of the derivation index is
folded away and then set, so 0xFFFFFFFF hardens to 0xFFFFFFFF and 0x7FFFFFFF
hardens to the same child. A non-hardened child index is
``index & 0x7FFFFFFF``.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from bip_utils import Bip32KeyError, Bip32Slip10Secp256k1

from bipkeychain.config import (
    BIP85_APP,
    BIPKEYCHAIN_APP,
    HARDENED_OFFSET,
    MAX_DERIVATION_DEPTH,
    MAX_INDEX,
    ROOT_SECRET_SIZE,
)
from bipkeychain.lib.errors import (
    DerivationDepthExceeded,
    InvalidSeed,
    KeyExpansionError,
)
from bipkeychain.lib.logs import get_logger, log

_logger = get_logger("key_tree")

# Namespace levels below the master key, always hardened.
NAMESPACE_LEVELS: Tuple[int, ...] = (BIP85_APP, BIPKEYCHAIN_APP)


def child_index(index: int, hardened: bool) -> int:
    """
    Map a derivation index to a BIP-32 child index.

    Inputs outside uint32 are reduced modulo 2**32 first, so this never
    raises for any integer.
    """
    index &= MAX_INDEX
    if hardened:
        return (index & ~HARDENED_OFFSET & MAX_INDEX) | HARDENED_OFFSET
    return index & ~HARDENED_OFFSET & MAX_INDEX


def is_hardened(index: int) -> bool:
    return bool(index & HARDENED_OFFSET)


def format_index(index: int) -> str:
    """Render a child index the way derivation paths write it (42' or 42)."""
    if is_hardened(index):
        return f"{index - HARDENED_OFFSET}'"
    return str(index)


def format_path(*indices: int) -> str:
    """Render child indices as an ``m/...`` derivation path."""
    return "/".join(["m"] + [format_index(i) for i in indices])


def entity_path(entity_index: int, hardened: bool = True) -> str:
    """Operator-facing path for a derivation index."""
    namespace = [child_index(level, True) for level in NAMESPACE_LEVELS]
    return format_path(*namespace, child_index(entity_index, hardened))


@dataclass(frozen=True)
class KeyNode:
    """One node of the key tree."""

    key_material: bytes = field(repr=False)
    chain_code: bytes = field(repr=False)
    depth: int
    child_index: int
    parent_fingerprint: bytes
    path: str = "m"
    _bip32: Any = field(default=None, repr=False, compare=False)

    @property
    def hardened(self) -> bool:
        return is_hardened(self.child_index)

    @property
    def fingerprint(self) -> bytes:
        """Fingerprint of this node (its children's parent fingerprint)."""
        return self._bip32.FingerPrint().ToBytes()

    @classmethod
    def _from_bip32(cls, bip32_ctx, path: str) -> "KeyNode":
        return cls(
            key_material=bip32_ctx.PrivateKey().Raw().ToBytes(),
            chain_code=bip32_ctx.ChainCode().ToBytes(),
            depth=bip32_ctx.Depth().ToInt(),
            child_index=bip32_ctx.Index().ToInt(),
            parent_fingerprint=bip32_ctx.ParentFingerPrint().ToBytes(),
            path=path,
            _bip32=bip32_ctx,
        )


class KeyTreeDeriver:
    """
    Walks the bip-keychain key tree from a master node.

    The deriver holds no mutable state after construction and is safe to
    share between threads.
    """

    def __init__(self, master: KeyNode, max_depth: int = MAX_DERIVATION_DEPTH):
        self._master = master
        self.max_depth = max_depth

    @classmethod
    def from_root_secret(
        cls, root_secret: bytes, max_depth: int = MAX_DERIVATION_DEPTH
    ) -> "KeyTreeDeriver":
        return cls(master_node(root_secret), max_depth=max_depth)

    @property
    def master(self) -> KeyNode:
        return self._master

    def derive_child(self, parent: KeyNode, index: int, hardened: bool) -> KeyNode:
        """
        One BIP-32 private child derivation step.

        Args:
            parent: Node to derive from
            index: Derivation index, any uint32
            hardened: Whether to set the hardened bit

        Returns:
            Child KeyNode

        Raises:
            DerivationDepthExceeded: If parent is already at max_depth
        """
        if parent.depth >= self.max_depth:
            raise DerivationDepthExceeded(
                f"cannot derive below depth {self.max_depth} "
                f"(parent {parent.path} is at depth {parent.depth})"
            )

        idx = child_index(index, hardened)
        try:
            child = parent._bip32.ChildKey(idx)
        except Bip32KeyError as e:
            # Probability ~2^-127 per step. BIP-32 says to skip to the next
            # index; an entity key must never move silently, so fail instead.
            raise KeyExpansionError(
                f"child {format_index(idx)} of {parent.path} is invalid: {e}",
                stage="tree",
            )
        return KeyNode._from_bip32(child, f"{parent.path}/{format_index(idx)}")

    def derive_namespace(self) -> KeyNode:
        """Node at m/83696968'/67797668'."""
        node = self._master
        for level in NAMESPACE_LEVELS:
            node = self.derive_child(node, level, hardened=True)
        return node

    def derive_entity_node(
        self, entity_index: int, hardened: bool = True, namespace: Optional[KeyNode] = None
    ) -> KeyNode:
        """Leaf node at m/83696968'/67797668'/{entity_index}['] ."""
        parent = namespace if namespace is not None else self.derive_namespace()
        leaf = self.derive_child(parent, entity_index, hardened)
        log(_logger, "debug", "Derived entity node", path=leaf.path, depth=leaf.depth)
        return leaf


def master_node(root_secret: bytes) -> KeyNode:
    """
    BIP-32 master node from a 64-byte root secret.

    Raises:
        InvalidSeed: If the secret has the wrong size or yields an invalid
            master key
    """
    if len(root_secret) != ROOT_SECRET_SIZE:
        raise InvalidSeed(
            f"root secret must be {ROOT_SECRET_SIZE} bytes, got {len(root_secret)}"
        )
    try:
        ctx = Bip32Slip10Secp256k1.FromSeed(bytes(root_secret))
    except (Bip32KeyError, ValueError) as e:
        raise InvalidSeed(f"root secret cannot seed a master key: {e}")
    return KeyNode._from_bip32(ctx, "m")
