"""
Tests for the TTL cache, its invalidation rules and the sweeper.
"""

import threading
import time

import pytest

from slotguard.cache.keys import availability_key, config_hash
from slotguard.cache.slot_cache import SlotCache
from slotguard.cache.store import TTLStore
from slotguard.cache.sweeper import CacheSweeper
from slotguard.domain.models import (
    AvailabilityResult,
    BookingSlot,
    IntervalConfig,
    UnavailableReason,
)

TEST_DATE = "2025-02-07"
OTHER_DATE = "2025-02-08"
LUNCH = IntervalConfig(start_time="12:00", end_time="13:00")
FREE = AvailabilityResult.free()
BUSY = AvailabilityResult.blocked(UnavailableReason.OCCUPIED, "Occupied until 15:30")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return SlotCache(clock=clock)


class TestTTLStore:
    """Tests for the generic TTL map."""

    def test_get_after_set(self, clock):
        store = TTLStore("test", 10, clock=clock)
        store.set("k", "v")

        assert store.get("k") == "v"

    def test_entry_expires_exactly_at_ttl(self, clock):
        store = TTLStore("test", 10, clock=clock)
        store.set("k", "v")

        clock.advance(9)
        assert store.get("k") == "v"

        clock.advance(1)
        assert store.get("k") is None
        assert len(store) == 0

    def test_set_overwrites_and_restarts_ttl(self, clock):
        store = TTLStore("test", 10, clock=clock)
        store.set("k", "old")
        clock.advance(8)
        store.set("k", "new")
        clock.advance(8)

        assert store.get("k") == "new"

    def test_per_call_ttl(self, clock):
        store = TTLStore("test", 10, clock=clock)
        store.set("k", "v", ttl=1)
        clock.advance(1)

        assert store.get("k") is None

    def test_purge_expired_only_removes_expired(self, clock):
        store = TTLStore("test", 10, clock=clock)
        store.set("old", 1)
        clock.advance(5)
        store.set("young", 2)
        clock.advance(5)

        assert store.purge_expired() == 1
        assert len(store) == 1
        assert store.get("young") == 2

    def test_hit_and_miss_counters(self, clock):
        store = TTLStore("test", 10, clock=clock)
        store.get("k")
        store.set("k", "v")
        store.get("k")

        stats = store.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)
        assert stats.hit_rate == 0.5

    def test_invalid_ttl(self, clock):
        with pytest.raises(ValueError):
            TTLStore("test", 0, clock=clock)


class TestSlotCacheViews:
    """Tests for the three typed views."""

    def test_availability_round_trip(self, cache):
        cache.set_availability(TEST_DATE, "14:00", 30, BUSY, "barber-1", LUNCH)

        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-1", LUNCH) == BUSY
        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-1") is None
        assert cache.get_availability(TEST_DATE, "14:00", 60, "barber-1", LUNCH) is None

    def test_availability_expires_after_five_minutes(self, cache, clock):
        cache.set_availability(TEST_DATE, "14:00", 30, FREE)

        clock.advance(299)
        assert cache.get_availability(TEST_DATE, "14:00", 30) == FREE

        clock.advance(1)
        assert cache.get_availability(TEST_DATE, "14:00", 30) is None

    def test_blocked_slots_keyed_by_booking_list(self, cache, clock):
        bookings = [BookingSlot.create(TEST_DATE, "14:00", 30, "cut", "barber-1")]
        changed = [BookingSlot.create(TEST_DATE, "15:00", 30, "cut", "barber-1")]
        cache.set_blocked_slots(TEST_DATE, bookings, 30, ["14:00", "14:30"])

        assert cache.get_blocked_slots(TEST_DATE, bookings, 30) == frozenset({"14:00", "14:30"})
        assert cache.get_blocked_slots(TEST_DATE, changed, 30) is None
        assert cache.get_blocked_slots(TEST_DATE, bookings, 15) is None

        clock.advance(120)
        assert cache.get_blocked_slots(TEST_DATE, bookings, 30) is None

    def test_bookings_by_date(self, cache, clock):
        bookings = [BookingSlot.create(TEST_DATE, "14:00", 30, "cut")]
        cache.set_bookings(TEST_DATE, bookings)

        cached = cache.get_bookings(TEST_DATE)
        assert cached == tuple(bookings)
        assert isinstance(cached, tuple)

        clock.advance(600)
        assert cache.get_bookings(TEST_DATE) is None

    def test_ttls_are_configurable(self, clock):
        cache = SlotCache(availability_ttl=1, clock=clock)
        cache.set_availability(TEST_DATE, "14:00", 30, FREE)
        clock.advance(1)

        assert cache.get_availability(TEST_DATE, "14:00", 30) is None


class TestInvalidation:
    """Tests for exact date, resource and pattern invalidation."""

    def _populate(self, cache):
        bookings = [BookingSlot.create(TEST_DATE, "14:00", 30, "cut", "barber-1")]
        other = [BookingSlot.create(OTHER_DATE, "14:00", 30, "cut", "barber-1")]
        for day, day_bookings in ((TEST_DATE, bookings), (OTHER_DATE, other)):
            cache.set_availability(day, "14:00", 30, BUSY, "barber-1")
            cache.set_availability(day, "14:00", 30, FREE, "barber-2")
            cache.set_availability(day, "14:00", 30, BUSY)
            cache.set_blocked_slots(day, day_bookings, 30, ["14:00", "14:30"])
            cache.set_bookings(day, day_bookings)
        return bookings, other

    def test_invalidate_date_is_exact(self, cache):
        bookings, other = self._populate(cache)

        removed = cache.invalidate_date(TEST_DATE)

        assert removed == 5
        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-1") is None
        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-2") is None
        assert cache.get_availability(TEST_DATE, "14:00", 30) is None
        assert cache.get_blocked_slots(TEST_DATE, bookings, 30) is None
        assert cache.get_bookings(TEST_DATE) is None

        assert cache.get_availability(OTHER_DATE, "14:00", 30, "barber-1") == BUSY
        assert cache.get_availability(OTHER_DATE, "14:00", 30) == BUSY
        assert cache.get_blocked_slots(OTHER_DATE, other, 30) is not None
        assert cache.get_bookings(OTHER_DATE) == tuple(other)

    def test_invalidate_date_does_not_match_prefixes(self, cache):
        """A date key is compared whole, so no other date is a casualty."""
        cache.set_bookings("2025-02-07", [])
        cache.set_bookings("2025-02-17", [])

        cache.invalidate_date("2025-02-07")

        assert cache.get_bookings("2025-02-17") == ()

    def test_invalidate_resource_leaves_unscoped_and_others(self, cache):
        self._populate(cache)

        removed = cache.invalidate_resource("barber-1")

        assert removed == 2
        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-1") is None
        assert cache.get_availability(OTHER_DATE, "14:00", 30, "barber-1") is None
        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-2") == FREE
        assert cache.get_availability(TEST_DATE, "14:00", 30) == BUSY
        assert cache.get_bookings(TEST_DATE) is not None

    def test_invalidate_resource_needs_an_id(self, cache):
        self._populate(cache)

        assert cache.invalidate_resource("") == 0
        assert len(cache.availability) == 6

    def test_resource_ids_are_not_substring_matched(self, cache):
        cache.set_availability(TEST_DATE, "14:00", 30, FREE, "barber-10")

        cache.invalidate_resource("barber-1")

        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-10") == FREE

    def test_invalidate_pattern(self, cache):
        self._populate(cache)

        removed = cache.invalidate_pattern("*|14:00|30|any|*", stores=["availability"])

        assert removed == 2
        assert cache.get_availability(TEST_DATE, "14:00", 30) is None
        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-1") == BUSY

    def test_clear_empties_everything(self, cache):
        self._populate(cache)
        cache.get_availability(TEST_DATE, "14:00", 30)

        cache.clear()

        stats = cache.stats()
        assert all(store.size == 0 for store in stats.stores)
        assert stats.availability.hits == 0


class TestGenerations:
    """Writes computed before an invalidation are dropped, not stored after it."""

    def test_current_generation_is_stored(self, cache):
        generation = cache.generation(TEST_DATE)

        assert cache.set_availability(TEST_DATE, "14:00", 30, FREE, generation=generation)
        assert cache.get_availability(TEST_DATE, "14:00", 30) == FREE

    def test_invalidate_date_drops_in_flight_writes(self, cache):
        generation = cache.generation(TEST_DATE)

        cache.invalidate_date(TEST_DATE)

        assert not cache.set_availability(TEST_DATE, "14:00", 30, FREE, generation=generation)
        assert not cache.set_bookings(TEST_DATE, [], generation=generation)
        assert not cache.set_blocked_slots(TEST_DATE, [], 30, [], generation=generation)
        assert cache.get_availability(TEST_DATE, "14:00", 30) is None
        assert cache.get_bookings(TEST_DATE) is None
        assert cache.stats().faults == 0

    def test_other_dates_keep_their_generation(self, cache):
        generation = cache.generation(OTHER_DATE)

        cache.invalidate_date(TEST_DATE)

        assert cache.set_bookings(OTHER_DATE, [], generation=generation)
        assert cache.get_bookings(OTHER_DATE) == ()

    @pytest.mark.parametrize(
        "invalidate",
        [
            lambda cache: cache.invalidate_resource("barber-1"),
            lambda cache: cache.invalidate_pattern("*"),
            lambda cache: cache.clear(),
        ],
        ids=["resource", "pattern", "clear"],
    )
    def test_wider_invalidations_drop_in_flight_writes(self, cache, invalidate):
        generation = cache.generation(TEST_DATE)

        invalidate(cache)

        assert not cache.set_availability(
            TEST_DATE, "14:00", 30, FREE, "barber-1", generation=generation
        )
        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-1") is None

    def test_unguarded_write_is_stored(self, cache):
        cache.invalidate_date(TEST_DATE)

        assert cache.set_bookings(TEST_DATE, [])


class TestFaultTolerance:
    """Cache faults degrade to misses and never reach the caller."""

    def test_unhashable_booking_list_is_a_miss(self, cache):
        bad_bookings = [object()]

        assert cache.get_blocked_slots(TEST_DATE, bad_bookings, 30) is None
        cache.set_blocked_slots(TEST_DATE, bad_bookings, 30, ["14:00"])

        assert cache.stats().faults == 2
        assert len(cache.blocked_slots) == 0

    def test_bad_date_is_a_miss(self, cache):
        assert cache.get_availability("not-a-date", "14:00", 30) is None
        assert cache.get_bookings("not-a-date") is None
        cache.set_bookings("not-a-date", [])

        assert cache.stats().faults == 3

    def test_failed_date_invalidation_clears_all(self, cache):
        cache.set_bookings(TEST_DATE, [])
        cache.set_availability(OTHER_DATE, "14:00", 30, FREE)

        cache.invalidate_date("garbage")

        assert len(cache.bookings) == 0
        assert len(cache.availability) == 0


class TestStats:
    def test_stats_report_sizes_and_memory(self, cache):
        cache.set_availability(TEST_DATE, "14:00", 30, FREE)
        cache.set_bookings(TEST_DATE, [])
        cache.get_availability(TEST_DATE, "14:00", 30)
        cache.get_availability(TEST_DATE, "15:00", 30)

        stats = cache.stats()

        assert stats.availability.size == 1
        assert stats.availability.hit_rate == 0.5
        assert stats.estimated_memory_bytes == 200 + 1000
        assert stats.to_dict()["availability"]["hits"] == 1


class TestKeys:
    def test_unscoped_key_renders_any(self):
        key = availability_key(TEST_DATE, "14:00", 30)

        assert key.render() == "2025-02-07|14:00|30|any|no-interval"

    def test_interval_hash_is_stable_and_distinct(self):
        other = IntervalConfig(start_time="12:30", end_time="13:30")

        assert config_hash(LUNCH) == config_hash(IntervalConfig("12:00", "13:00"))
        assert config_hash(LUNCH) != config_hash(other)
        assert config_hash(LUNCH) != config_hash(LUNCH, business_hours=other)


class TestConcurrency:
    def test_concurrent_set_and_invalidate(self):
        """Interleaved writers and invalidators leave the cache consistent."""
        cache = SlotCache()
        errors = []

        def writer(resource):
            try:
                for minute in range(200):
                    cache.set_availability(TEST_DATE, "14:00", minute + 1, FREE, resource)
                    cache.get_availability(TEST_DATE, "14:00", minute + 1, resource)
            except Exception as exc:  # pragma: no cover - failure path
                errors.append(exc)

        def invalidator():
            for _ in range(50):
                cache.invalidate_date(TEST_DATE)
                cache.invalidate_resource("barber-1")

        threads = [threading.Thread(target=writer, args=(f"barber-{n}",)) for n in range(4)]
        threads.append(threading.Thread(target=invalidator))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        cache.invalidate_date(TEST_DATE)
        assert len(cache.availability) == 0

    def test_write_racing_an_invalidation_is_not_served(self):
        """Once invalidate_date returns, no later get sees a value computed before it."""
        cache = SlotCache()
        computed = threading.Event()
        invalidated = threading.Event()

        def slow_writer():
            generation = cache.generation(TEST_DATE)
            assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-1") is None
            computed.set()
            invalidated.wait(timeout=5)
            cache.set_availability(TEST_DATE, "14:00", 30, FREE, "barber-1", generation=generation)

        writer = threading.Thread(target=slow_writer)
        writer.start()
        assert computed.wait(timeout=5)

        cache.invalidate_date(TEST_DATE)
        invalidated.set()
        writer.join(timeout=5)

        assert not writer.is_alive()
        assert cache.get_availability(TEST_DATE, "14:00", 30, "barber-1") is None


class TestSweeper:
    """Tests for the background sweep."""

    def test_sweep_once_removes_expired(self, cache, clock):
        cache.set_availability(TEST_DATE, "14:00", 30, FREE)
        cache.set_bookings(TEST_DATE, [])
        clock.advance(300)

        sweeper = CacheSweeper(cache, interval_seconds=60)

        assert sweeper.sweep_once() == 1
        assert len(cache.availability) == 0
        assert len(cache.bookings) == 1

    def test_background_thread_runs_and_stops(self, cache, clock):
        cache.set_availability(TEST_DATE, "14:00", 30, FREE)
        clock.advance(300)

        sweeper = cache.start_auto_cleanup(interval_seconds=0.01)
        try:
            deadline = time.monotonic() + 2
            while sweeper.runs == 0 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            sweeper.stop()

        assert sweeper.runs > 0
        assert not sweeper.running
        assert len(cache.availability) == 0

    def test_context_manager(self, cache):
        with CacheSweeper(cache, interval_seconds=60) as sweeper:
            assert sweeper.running
        assert not sweeper.running

    def test_invalid_interval(self, cache):
        with pytest.raises(ValueError):
            CacheSweeper(cache, interval_seconds=0)
