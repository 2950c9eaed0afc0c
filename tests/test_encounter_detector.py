import pytest

from surelink.services.encounter_detector import detect
from surelink.services.encounter_ledger import EncounterLedger
from surelink.services.presence_store import PresenceStore
from surelink.utils.geo import Position

COOLDOWN = 300_000


@pytest.fixture()
def store(clock):
    return PresenceStore(clock)


@pytest.fixture()
def ledger(clock):
    return EncounterLedger(clock)


def test_unknown_current_id_returns_empty(store, ledger):
    store.upsert("a", Position(35.0, 139.0), "alice")
    assert detect("ghost", store, ledger) == []


def test_close_pair_matches_and_records(store, ledger):
    store.upsert("a", Position(35.0, 139.0), "alice")
    store.upsert("b", Position(35.00001, 139.00001), "bob")

    matches = detect("b", store, ledger, 50, COOLDOWN)

    assert len(matches) == 1
    m = matches[0]
    assert m.connection_id == "a"
    assert m.display_name == "alice"
    assert 0 < m.distance_meters < 50
    assert m.position == Position(35.0, 139.0)
    assert ledger.last_triggered_at("a", "b") is not None


def test_far_pair_does_not_match(store, ledger):
    store.upsert("a", Position(35.0, 139.0), "alice")
    store.upsert("b", Position(36.0, 140.0), "bob")
    assert detect("b", store, ledger) == []
    assert len(ledger) == 0


def test_threshold_is_strict(store, ledger):
    store.upsert("a", Position(0.0, 0.0), "alice")
    store.upsert("b", Position(0.0001, 0.0), "bob")  # ~11.1 m
    d = detect("b", store, ledger, threshold_meters=1000)[0].distance_meters

    ledger2 = EncounterLedger()
    assert detect("b", store, ledger2, threshold_meters=d) == []


def test_other_side_is_suppressed_right_after(store, ledger):
    store.upsert("a", Position(35.0, 139.0), "alice")
    store.upsert("b", Position(35.00001, 139.00001), "bob")

    assert len(detect("b", store, ledger, 50, COOLDOWN)) == 1
    assert detect("a", store, ledger, 50, COOLDOWN) == []


def test_cooldown_half_and_expiry(store, ledger, clock):
    store.upsert("a", Position(35.0, 139.0), "alice")
    store.upsert("b", Position(35.00001, 139.00001), "bob")
    detect("b", store, ledger, 50, COOLDOWN)

    clock.advance(COOLDOWN / 2)
    assert detect("b", store, ledger, 50, COOLDOWN) == []

    clock.advance(COOLDOWN / 2 + 1)
    assert len(detect("b", store, ledger, 50, COOLDOWN)) == 1


def test_results_follow_insertion_order(store, ledger):
    store.upsert("z", Position(35.0, 139.0), "zed")
    store.upsert("m", Position(35.00002, 139.0), "em")
    store.upsert("a", Position(35.00001, 139.0), "ay")

    matches = detect("a", store, ledger, 50, COOLDOWN)
    assert [m.connection_id for m in matches] == ["z", "m"]
