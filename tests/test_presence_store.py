import pytest

from surelink.core.errors import InvalidPositionError
from surelink.services.presence_store import PresenceStore
from surelink.utils.geo import Position


@pytest.fixture()
def store(clock):
    return PresenceStore(clock)


class TestUpsert:

    def test_creates_entry_with_timestamp(self, store, clock):
        p = store.upsert("a", Position(35.0, 139.0), "alice")
        assert p.display_name == "alice"
        assert p.last_updated_at == clock.now
        assert store.count() == 1

    def test_overwrites_and_refreshes(self, store, clock):
        store.upsert("a", Position(35.0, 139.0), "alice")
        clock.advance(1000)
        p = store.upsert("a", Position(35.1, 139.1), "alice2")
        assert p.position == Position(35.1, 139.1)
        assert p.display_name == "alice2"
        assert p.last_updated_at == clock.now
        assert store.count() == 1

    @pytest.mark.parametrize("pos", [Position(91, 0), Position(-90.5, 0), Position(0, 180.1), Position(0, -181)])
    def test_out_of_range_raises_without_mutation(self, store, pos):
        store.upsert("a", Position(1, 1), "alice")
        with pytest.raises(InvalidPositionError):
            store.upsert("a", pos, "mallory")
        assert store.get("a").position == Position(1, 1)
        assert store.get("a").display_name == "alice"

    def test_out_of_range_never_creates(self, store):
        with pytest.raises(InvalidPositionError):
            store.upsert("a", Position(100, 0), "alice")
        assert store.get("a") is None

    def test_bounds_are_inclusive(self, store):
        store.upsert("a", Position(90, 180), "n")
        store.upsert("b", Position(-90, -180), "s")
        assert store.count() == 2


class TestReads:

    def test_snapshot_is_a_copy(self, store):
        store.upsert("a", Position(1, 1), "alice")
        snap = store.snapshot()
        store.upsert("a", Position(2, 2), "alice")
        store.upsert("b", Position(3, 3), "bob")
        assert snap["a"].position == Position(1, 1)
        assert "b" not in snap

    def test_mutating_snapshot_entry_does_not_leak(self, store):
        store.upsert("a", Position(1, 1), "alice")
        store.snapshot()["a"].display_name = "hacked"
        assert store.get("a").display_name == "alice"

    def test_snapshot_keeps_insertion_order(self, store):
        for cid in ("c", "a", "b"):
            store.upsert(cid, Position(0, 0), cid)
        assert list(store.snapshot()) == ["c", "a", "b"]


class TestRemove:

    def test_remove_is_idempotent(self, store):
        store.upsert("a", Position(1, 1), "alice")
        store.remove("a")
        store.remove("a")
        store.remove("never-existed")
        assert store.count() == 0


class TestEvictStale:

    def test_removes_exactly_the_stale_entries(self, store, clock):
        store.upsert("old", Position(0, 0), "old")
        clock.advance(2_000)
        store.upsert("edge", Position(0, 0), "edge")
        clock.advance(1_000)
        store.upsert("fresh", Position(0, 0), "fresh")

        # now - max_age == edge's timestamp: not strictly older, so it stays
        evicted = store.evict_stale(1_000)

        assert evicted == 1
        assert set(store.snapshot()) == {"edge", "fresh"}

    def test_nothing_to_evict(self, store):
        store.upsert("a", Position(0, 0), "a")
        assert store.evict_stale(300_000) == 0
        assert store.count() == 1


class TestNearby:

    def test_sorted_by_distance_within_radius(self, store):
        store.upsert("me", Position(35.0, 139.0), "me")
        store.upsert("far", Position(35.005, 139.0), "far")      # ~556 m
        store.upsert("near", Position(35.0001, 139.0), "near")   # ~11 m
        store.upsert("away", Position(36.0, 139.0), "away")      # ~111 km

        out = store.nearby("me", 1000)

        assert [u.connection_id for u in out] == ["near", "far"]
        assert out[0].distance_meters < out[1].distance_meters

    def test_unknown_connection_gets_nothing(self, store):
        store.upsert("a", Position(0, 0), "a")
        assert store.nearby("ghost", 1000) == []
