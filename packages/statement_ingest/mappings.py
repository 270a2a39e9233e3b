"""Description mapping resolver.

Resolution is exact-match on the canonical form produced by
:func:`normalize_description`; there is no fuzzy matching, so a category is
never assigned from a merely similar description.

A :class:`MappingSnapshot` is taken once before an import starts and is
read-only for the whole run: edits the surrounding application makes to the
account's mappings afterwards are not observed mid-run.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .logging_setup import get_logger
from .models import DescriptionMapping, ResolvedDescription
from .normalizers import normalize_description

_logger = get_logger("statement_ingest.mappings")


@dataclass(frozen=True, slots=True)
class MappingSnapshot:
    account_id: int | None
    entries: Mapping[str, DescriptionMapping] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        # Private read-only copy of whatever mapping the caller passed
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    @classmethod
    def empty(cls, account_id: int | None = None) -> MappingSnapshot:
        return cls(account_id=account_id)

    @classmethod
    def from_mappings(
        cls, account_id: int | None, mappings: Iterable[DescriptionMapping]
    ) -> MappingSnapshot:
        """Build a snapshot keyed by canonical original description.

        Mappings owned by another account raise ``ValueError``. When two
        mappings share a canonical key but disagree on simplified description
        or category, both are dropped.
        """

        entries: dict[str, DescriptionMapping] = {}
        conflicted: set[str] = set()
        for m in mappings:
            if m.account_id is not None and account_id is not None and m.account_id != account_id:
                raise ValueError(
                    f"mapping for {m.original_description!r} belongs to account "
                    f"{m.account_id}, not {account_id}"
                )
            key = normalize_description(m.original_description)
            if not key or key in conflicted:
                continue
            existing = entries.get(key)
            if existing is None:
                entries[key] = m
            elif (existing.simplified_description, existing.category) != (
                m.simplified_description,
                m.category,
            ):
                del entries[key]
                conflicted.add(key)
                _logger.warning("resolver:conflict account=%s key=%r", account_id, key)
        return cls(account_id=account_id, entries=entries)

    def lookup(self, canonical: str) -> DescriptionMapping | None:
        return self.entries.get(canonical)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, canonical: object) -> bool:
        return canonical in self.entries


def resolve_description(raw: str | None, snapshot: MappingSnapshot) -> ResolvedDescription:
    """Resolve ``raw`` against ``snapshot``.

    Unmapped descriptions pass through with ``simplified`` set to the
    canonical form and no category.
    """

    canonical = normalize_description(raw)
    mapping = snapshot.lookup(canonical) if canonical else None
    if mapping is None:
        return ResolvedDescription(canonical=canonical, simplified=canonical, category=None, matched=False)
    simplified = (mapping.simplified_description or "").strip() or canonical
    return ResolvedDescription(
        canonical=canonical, simplified=simplified, category=mapping.category, matched=True
    )


class MappingResolver:
    """Stateful resolver for one import run.

    Tracks how many descriptions matched and which canonical keys did not, in
    first-seen order. With ``learn=True`` it also collects an incomplete
    :class:`DescriptionMapping` per unmapped key for the user to complete
    later; these suggestions are never added to the snapshot.
    """

    def __init__(self, snapshot: MappingSnapshot, *, learn: bool = False) -> None:
        self.snapshot = snapshot
        self.learn = learn
        self.matched = 0
        self._unmapped: dict[str, str] = {}

    def resolve(self, raw: str | None) -> ResolvedDescription:
        resolved = resolve_description(raw, self.snapshot)
        if resolved.matched:
            self.matched += 1
        elif resolved.canonical and resolved.canonical not in self._unmapped:
            self._unmapped[resolved.canonical] = " ".join((raw or "").split())
        return resolved

    @property
    def unmapped(self) -> tuple[str, ...]:
        return tuple(self._unmapped)

    def pending_mappings(self) -> tuple[DescriptionMapping, ...]:
        if not self.learn:
            return ()
        return tuple(
            DescriptionMapping(
                original_description=original,
                simplified_description=None,
                category=None,
                account_id=self.snapshot.account_id,
            )
            for original in self._unmapped.values()
        )

    def log_summary(self) -> None:
        _logger.info(
            "resolver:summary account=%s matched=%d unmapped=%d",
            self.snapshot.account_id,
            self.matched,
            len(self._unmapped),
        )


__all__ = ["MappingSnapshot", "MappingResolver", "resolve_description"]
