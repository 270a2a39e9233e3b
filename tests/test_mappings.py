import logging

import pytest

from statement_ingest import (
    DescriptionMapping,
    MappingResolver,
    MappingSnapshot,
    ResolvedDescription,
    resolve_description,
)


def _snapshot(*mappings: DescriptionMapping, account_id: int | None = 1) -> MappingSnapshot:
    return MappingSnapshot.from_mappings(account_id, mappings)


UBER = DescriptionMapping("uber trip", "Uber", "Transporte", account_id=1)


@pytest.mark.parametrize("raw", ["UBER   TRIP", "uber trip", " Uber Trip ", "UBER\tTRIP"])
def test_resolution_ignores_case_and_spacing(raw: str) -> None:
    resolved = resolve_description(raw, _snapshot(UBER))
    assert resolved == ResolvedDescription(
        canonical="uber trip", simplified="Uber", category="Transporte", matched=True
    )


def test_mapping_key_is_canonicalized_too() -> None:
    snap = _snapshot(DescriptionMapping("UBER * TRIP 12/03", "Uber", "Transporte", account_id=1))
    assert "uber trip" in snap
    assert resolve_description("Uber Trip", snap).matched


def test_unmapped_passes_through_canonical_form() -> None:
    resolved = resolve_description("Padaria Pão Quente", _snapshot(UBER))
    assert resolved.matched is False
    assert resolved.simplified == "padaria pao quente"
    assert resolved.category is None


def test_blank_simplified_falls_back_to_canonical() -> None:
    snap = _snapshot(DescriptionMapping("Netflix.com", "   ", "Streaming", account_id=1))
    resolved = resolve_description("NETFLIX.COM", snap)
    assert resolved.matched
    assert (resolved.simplified, resolved.category) == ("netflix com", "Streaming")


def test_no_partial_or_fuzzy_matches() -> None:
    snap = _snapshot(UBER)
    assert not resolve_description("UBER TRIP HELP", snap).matched
    assert not resolve_description("UBER", snap).matched
    assert not resolve_description("", snap).matched


def test_conflicting_mappings_are_both_dropped(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="statement_ingest")
    snap = _snapshot(
        DescriptionMapping("Uber Trip", "Uber", "Transporte", account_id=1),
        DescriptionMapping("UBER  TRIP", "Uber", "Lazer", account_id=1),
        DescriptionMapping("uber trip", "Uber", "Transporte", account_id=1),
        DescriptionMapping("ifood", "iFood", "Restaurante", account_id=1),
    )
    assert "uber trip" not in snap
    assert len(snap) == 1
    assert any("resolver:conflict" in r.getMessage() for r in caplog.records)


def test_identical_duplicates_are_not_a_conflict() -> None:
    snap = _snapshot(UBER, DescriptionMapping("UBER TRIP", "Uber", "Transporte", account_id=1))
    assert len(snap) == 1


def test_mapping_from_another_account_is_rejected() -> None:
    with pytest.raises(ValueError, match="belongs to account 2"):
        _snapshot(DescriptionMapping("uber trip", "Uber", "Transporte", account_id=2))


def test_snapshot_is_read_only() -> None:
    snap = _snapshot(UBER)
    with pytest.raises(TypeError):
        snap.entries["x"] = UBER  # type: ignore[index]


def test_snapshot_built_directly_does_not_follow_the_source_dict() -> None:
    source = {"uber trip": UBER}
    snap = MappingSnapshot(account_id=1, entries=source)
    source["netflix"] = DescriptionMapping("netflix", "Netflix", "Assinaturas")
    del source["uber trip"]
    assert snap.lookup("uber trip") == UBER
    assert snap.lookup("netflix") is None
    assert len(snap) == 1
    with pytest.raises(TypeError):
        snap.entries["x"] = UBER  # type: ignore[index]


def test_resolver_tracks_unmapped_in_first_seen_order() -> None:
    resolver = MappingResolver(_snapshot(UBER))
    for raw in ["NETFLIX", "Uber Trip", "padaria", "Netflix ", "UBER TRIP"]:
        resolver.resolve(raw)

    assert resolver.matched == 2
    assert resolver.unmapped == ("netflix", "padaria")
    assert resolver.pending_mappings() == ()


def test_learn_collects_incomplete_suggestions() -> None:
    resolver = MappingResolver(_snapshot(UBER, account_id=1), learn=True)
    resolver.resolve("NETFLIX.COM  ")
    resolver.resolve("Uber Trip")

    (pending,) = resolver.pending_mappings()
    assert pending == DescriptionMapping("NETFLIX.COM", None, None, account_id=1)
    assert pending.is_incomplete
    # Suggestions never feed back into the snapshot
    assert resolve_description("NETFLIX.COM", resolver.snapshot).matched is False
