"""
Content-addressed whitelist of (parent, child, template, terms, licensee) tuples.

Each entry is stored under keccak256(abi.encodePacked(...)) of its five
fields, so a lookup never needs the entry itself. A licensee equal to
the zero address is a wildcard: it authorizes every caller for the same
(parent, child, template, terms) combination.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Iterator, Sequence

from eth_abi.packed import encode_packed
from eth_utils import keccak

from .errors import (
    AlreadyWhitelistedError,
    BatchLengthMismatchError,
    NotWhitelistedError,
    ZeroIdentifierError,
)
from .identifiers import WILDCARD_LICENSEE, ZERO_ADDRESS, normalize_address, parse_uint256


_KEY_TYPES = ["address", "address", "address", "uint256", "address"]


@dataclass(frozen=True)
class WhitelistEntry:
    parent_ip_id: str
    child_ip_id: str
    license_template: str
    license_terms_id: int
    licensee: str = WILDCARD_LICENSEE

    @classmethod
    def create(
        cls,
        parent_ip_id: str,
        child_ip_id: str,
        license_template: str,
        license_terms_id: int,
        licensee: str = WILDCARD_LICENSEE,
    ) -> "WhitelistEntry":
        return cls(
            parent_ip_id=normalize_address(parent_ip_id),
            child_ip_id=normalize_address(child_ip_id),
            license_template=normalize_address(license_template),
            license_terms_id=parse_uint256(license_terms_id, "license_terms_id"),
            licensee=normalize_address(licensee),
        )

    @property
    def is_wildcard(self) -> bool:
        return self.licensee == WILDCARD_LICENSEE

    def for_licensee(self, licensee: str) -> "WhitelistEntry":
        return replace(self, licensee=normalize_address(licensee))

    def wildcard(self) -> "WhitelistEntry":
        return replace(self, licensee=WILDCARD_LICENSEE)

    def validate(self) -> None:
        if self.parent_ip_id == ZERO_ADDRESS:
            raise ZeroIdentifierError("parent_ip_id")
        if self.child_ip_id == ZERO_ADDRESS:
            raise ZeroIdentifierError("child_ip_id")
        if self.license_template == ZERO_ADDRESS:
            raise ZeroIdentifierError("license_template")

    def to_dict(self) -> dict[str, Any]:
        return {
            "parent_ip_id": self.parent_ip_id,
            "child_ip_id": self.child_ip_id,
            "license_template": self.license_template,
            "license_terms_id": self.license_terms_id,
            "licensee": self.licensee,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WhitelistEntry":
        return cls.create(
            parent_ip_id=data["parent_ip_id"],
            child_ip_id=data["child_ip_id"],
            license_template=data["license_template"],
            license_terms_id=data["license_terms_id"],
            licensee=data.get("licensee") or WILDCARD_LICENSEE,
        )

    def __str__(self) -> str:
        return (
            f"(parent={self.parent_ip_id}, child={self.child_ip_id}, "
            f"template={self.license_template}, terms={self.license_terms_id}, "
            f"licensee={self.licensee})"
        )


def whitelist_key(entry: WhitelistEntry) -> str:
    """Deterministic storage key for an entry."""
    packed = encode_packed(
        _KEY_TYPES,
        [
            entry.parent_ip_id,
            entry.child_ip_id,
            entry.license_template,
            entry.license_terms_id,
            entry.licensee,
        ],
    )
    return "0x" + keccak(packed).hex()


def entries_from_columns(
    parent_ip_ids: Sequence[str],
    child_ip_ids: Sequence[str],
    license_templates: Sequence[str],
    license_terms_ids: Sequence[int],
    licensees: Sequence[str],
) -> list[WhitelistEntry]:
    lengths = (
        len(parent_ip_ids),
        len(child_ip_ids),
        len(license_templates),
        len(license_terms_ids),
        len(licensees),
    )
    if len(set(lengths)) != 1:
        raise BatchLengthMismatchError(lengths)
    return [
        WhitelistEntry.create(*row)
        for row in zip(parent_ip_ids, child_ip_ids, license_templates, license_terms_ids, licensees)
    ]


class WhitelistStore:
    """
    Boolean set of whitelist keys kept in a contract's storage.

    The store does no access control and no rollback of its own: callers
    run it inside a ledger transaction so a failed batch leaves nothing
    behind.
    """

    def __init__(self, storage: Callable[[], dict[str, Any]]):
        self._storage = storage

    def _keys(self) -> dict[str, dict[str, Any]]:
        return self._storage().setdefault("whitelist", {})

    def contains(self, entry: WhitelistEntry) -> bool:
        return whitelist_key(entry) in self._keys()

    def add(self, entry: WhitelistEntry) -> str:
        entry.validate()
        if self.contains(entry):
            raise AlreadyWhitelistedError(entry)
        key = whitelist_key(entry)
        self._keys()[key] = entry.to_dict()
        return key

    def remove(self, entry: WhitelistEntry) -> str:
        entry.validate()
        if not self.contains(entry):
            raise NotWhitelistedError(entry)
        key = whitelist_key(entry)
        del self._keys()[key]
        return key

    def is_authorized(self, entry: WhitelistEntry, caller: str) -> bool:
        return self.contains(entry.for_licensee(caller)) or self.contains(entry.wildcard())

    def entries(self) -> Iterator[WhitelistEntry]:
        for data in list(self._keys().values()):
            yield WhitelistEntry.from_dict(data)

    def __len__(self) -> int:
        return len(self._keys())
