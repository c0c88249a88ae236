"""
Identity -- When are two physical records "the same stock"?

Responsibility:
    Canonicalizes the free-text identity attributes of a physical record
    (project, part name, description, unit of measure, location) into a
    LogicalIdentity that every quantity computation groups by.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - normalize() is total over strings and idempotent.
    - Identity equality is computed from the raw stored strings on every
      query.  Nothing here is persisted on stock_master; stored text keeps
      its original casing and spacing.
    - Units of measure are compared by normalized text only.  "pcs" and
      "pieces" are different identities.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass
from typing import Any

from stock_kernel.utils.hashing import hash_parts

IDENTITY_FIELDS = ("project", "part_name", "description", "uom", "location")


def normalize(text: str | None) -> str:
    """
    Canonical form of an identity attribute.

    Trims, lowercases, and collapses every internal whitespace run to a
    single space.  None is treated as the empty string.

        >>> normalize("  ACME   Corp ")
        'acme corp'
    """
    if text is None:
        return ""
    return " ".join(text.split()).lower()


@dataclass(frozen=True, slots=True)
class LogicalIdentity:
    """
    Normalized (project, part_name, description, uom, location) tuple.

    Construct with from_fields() or of(); the constructor assumes its
    arguments are already normalized.
    """

    project: str
    part_name: str
    description: str
    uom: str
    location: str

    @classmethod
    def from_fields(
        cls,
        project: str | None,
        part_name: str | None,
        description: str | None,
        uom: str | None,
        location: str | None,
    ) -> LogicalIdentity:
        return cls(
            project=normalize(project),
            part_name=normalize(part_name),
            description=normalize(description),
            uom=normalize(uom),
            location=normalize(location),
        )

    @classmethod
    def of(cls, record: Any) -> LogicalIdentity:
        """Identity of anything carrying the five identity attributes."""
        return cls.from_fields(*(getattr(record, name) for name in IDENTITY_FIELDS))

    def as_tuple(self) -> tuple[str, str, str, str, str]:
        return astuple(self)

    @property
    def key(self) -> str:
        """Stable SHA-256 digest naming this identity's lock row."""
        return hash_parts(self.as_tuple())
