"""Tests for the reconciliation engine.

Every test runs against a fresh in-memory store with a fixed cycle time, so
timestamps and feed scores are deterministic.
"""

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from jobfeed.domain.models import ChangeEventType, ListingStatus, NormalizedPosting
from jobfeed.persistence import IndexStore, PersistenceError, keys
from jobfeed.persistence.repositories import IndexRepository, ListingRepository
from jobfeed.persistence.schema import ListingModel, SetMemberModel, SortedSetMemberModel
from jobfeed.reconciliation import CycleTimeoutError, ListingOutcome, ReconciliationEngine
from jobfeed.utils.timestamps import to_score

NOW = datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)
LATER = NOW + timedelta(hours=1)


@pytest.fixture
def store():
    store = IndexStore("sqlite:///:memory:").open()
    yield store
    store.close()


@pytest.fixture
def engine(store):
    return ReconciliationEngine(store, removed_retention=timedelta(days=7))


def posting(source_id="1", title="Data Engineer", location="New York, NY", department="Engineering", **extra):
    return NormalizedPosting(
        source_id=source_id,
        title=title,
        url=f"https://example.com/jobs/{source_id}",
        location_raw=location,
        department_raw=department,
        **extra,
    )


def members(store, set_key):
    with store.batch() as batch:
        return batch.indexes.members(set_key)


def feed(store, feed_key):
    with store.batch() as batch:
        return dict(batch.feeds.range_desc(feed_key))


def load(store, source_id="1", employer_id="acme"):
    with store.batch() as batch:
        return batch.listings.get(employer_id, source_id)


def dump_state(store):
    """Every listing record, set membership and feed entry in the store."""
    with store.batch() as batch:
        session = batch.session
        listings = {
            row.key: row.to_domain().model_dump() for row in session.scalars(select(ListingModel))
        }
        sets = {(row.set_key, row.member) for row in session.scalars(select(SetMemberModel))}
        feeds = {
            (row.set_key, row.member, row.score) for row in session.scalars(select(SortedSetMemberModel))
        }
    return listings, sets, feeds


class TestCreate:
    """A snapshot with one new posting (first sync of an employer)."""

    def test_indexes_and_feeds_populated(self, store, engine):
        result = engine.reconcile("acme", [posting()], employer_name="Acme Capital", now=NOW)

        assert members(store, "idx:employer:acme") == {"acme:1"}
        assert members(store, "idx:location:new_york") == {"acme:1"}
        assert members(store, "idx:department:engineering") == {"acme:1"}
        assert members(store, "idx:tag:engineering") == {"acme:1"}
        assert members(store, "idx:status:active") == {"acme:1"}
        assert feed(store, "feed:new") == {"acme:1": to_score(NOW)}
        assert feed(store, "feed:employer:acme") == {"acme:1": to_score(NOW)}
        assert result.stats.created == 1

    def test_record_fields(self, store, engine):
        engine.reconcile("acme", [posting()], employer_name="Acme Capital", now=NOW)

        listing = load(store)
        assert listing.identity == "acme:1"
        assert listing.employer_name == "Acme Capital"
        assert listing.status == ListingStatus.ACTIVE
        assert listing.location_normalized == "new_york"
        assert listing.department_normalized == "engineering"
        assert listing.tags == ["engineering"]
        assert listing.first_seen_at == NOW
        assert listing.last_seen_at == NOW
        assert listing.updated_at == NOW
        assert listing.removed_at is None

    def test_source_updated_at_kept(self, store, engine):
        source_time = NOW - timedelta(days=2)
        engine.reconcile("acme", [posting(updated_at=source_time)], now=NOW)

        assert load(store).updated_at == source_time

    def test_created_event(self, engine):
        result = engine.reconcile("acme", [posting()], employer_name="Acme Capital", now=NOW)

        assert len(result.events) == 1
        event = result.events[0]
        assert event.event == ChangeEventType.CREATED
        assert event.employer == "acme"
        assert event.employer_name == "Acme Capital"
        assert event.title == "Data Engineer"
        assert event.location == "New York, NY"
        assert event.department == "Engineering"
        assert event.tags == ["engineering"]
        assert event.timestamp == NOW


class TestRemoval:
    """An empty follow-up snapshot removes the employer's active listings."""

    def test_listing_moves_to_removed(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)

        result = engine.reconcile("acme", [], now=LATER)

        assert "acme:1" not in members(store, "idx:status:active")
        assert members(store, "idx:status:removed") == {"acme:1"}
        assert feed(store, "feed:removed") == {"acme:1": to_score(LATER)}
        assert result.employer_stats.active_count == 0
        assert result.stats.removed == 1

    def test_removed_record_fields(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)
        engine.reconcile("acme", [], now=LATER)

        listing = load(store)
        assert listing.status == ListingStatus.REMOVED
        assert listing.removed_at == LATER
        assert listing.expires_at == LATER + timedelta(days=7)

    def test_other_indexes_keep_removed_listing(self, store, engine):
        """Removed listings stay queryable by employer, location and tag until purged."""
        engine.reconcile("acme", [posting()], now=NOW)
        engine.reconcile("acme", [], now=LATER)

        assert members(store, "idx:employer:acme") == {"acme:1"}
        assert members(store, "idx:location:new_york") == {"acme:1"}
        assert members(store, "idx:tag:engineering") == {"acme:1"}

    def test_removed_event_carries_listing_fields(self, engine):
        engine.reconcile("acme", [posting()], employer_name="Acme Capital", now=NOW)

        result = engine.reconcile("acme", [], employer_name="Acme Capital", now=LATER)

        assert len(result.removed_events) == 1
        event = result.removed_events[0]
        assert event.employer == "acme"
        assert event.employer_name == "Acme Capital"
        assert event.title == "Data Engineer"
        assert event.url == "https://example.com/jobs/1"
        assert event.location == "New York, NY"
        assert event.department == "Engineering"
        assert event.tags == ["engineering"]
        assert event.timestamp == LATER

    def test_every_missing_listing_removed(self, store, engine):
        engine.reconcile("acme", [posting("1"), posting("2"), posting("3")], now=NOW)

        result = engine.reconcile("acme", [posting("2")], now=LATER)

        assert members(store, "idx:status:active") == {"acme:2"}
        assert members(store, "idx:status:removed") == {"acme:1", "acme:3"}
        assert result.stats.removed == 2
        assert result.stats.unchanged == 1

    def test_removal_scoped_to_employer(self, store, engine):
        engine.reconcile("acme", [posting("1")], now=NOW)
        engine.reconcile("globex", [posting("1")], now=NOW)

        engine.reconcile("acme", [], now=LATER)

        assert members(store, "idx:status:active") == {"globex:1"}

    def test_already_removed_not_removed_again(self, engine):
        engine.reconcile("acme", [posting()], now=NOW)
        engine.reconcile("acme", [], now=LATER)

        result = engine.reconcile("acme", [], now=LATER + timedelta(hours=1))

        assert result.stats.removed == 0
        assert result.events == []

    def test_stale_active_membership_repaired(self, store, engine):
        """An active-index entry without an active record is dropped, with no event."""
        with store.batch() as batch:
            batch.indexes.add("idx:employer:acme", "acme:ghost")
            batch.indexes.add("idx:status:active", "acme:ghost")

        result = engine.reconcile("acme", [], now=NOW)

        assert result.events == []
        assert "acme:ghost" not in members(store, "idx:status:active")


class TestUpdate:
    """A changed title on the next cycle."""

    def test_title_change_adds_tag(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)

        result = engine.reconcile("acme", [posting(title="Senior Data Engineer")], now=LATER)

        listing = load(store)
        assert result.stats.updated == 1
        assert listing.tags == ["engineering", "senior"]
        assert listing.title == "Senior Data Engineer"
        assert members(store, "idx:tag:senior") == {"acme:1"}
        assert members(store, "idx:location:new_york") == {"acme:1"}
        assert members(store, "idx:department:engineering") == {"acme:1"}

    def test_fingerprint_changes(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)
        before = load(store).content_fingerprint

        engine.reconcile("acme", [posting(title="Senior Data Engineer")], now=LATER)

        assert load(store).content_fingerprint != before

    def test_update_emits_no_event(self, engine):
        engine.reconcile("acme", [posting()], now=NOW)

        result = engine.reconcile("acme", [posting(title="Senior Data Engineer")], now=LATER)

        assert result.events == []

    def test_first_seen_and_feed_score_preserved(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)

        engine.reconcile("acme", [posting(title="Senior Data Engineer")], now=LATER)

        listing = load(store)
        assert listing.first_seen_at == NOW
        assert listing.last_seen_at == LATER
        assert feed(store, "feed:new") == {"acme:1": to_score(NOW)}

    def test_old_index_memberships_removed(self, store, engine):
        engine.reconcile("acme", [posting(title="Senior Quant Researcher", department="Research")], now=NOW)

        engine.reconcile(
            "acme", [posting(title="Data Engineer", location="London, UK", department="Engineering")], now=LATER
        )

        assert members(store, "idx:location:new_york") == set()
        assert members(store, "idx:location:london") == {"acme:1"}
        assert members(store, "idx:department:research") == set()
        assert members(store, "idx:department:engineering") == {"acme:1"}
        assert members(store, "idx:tag:senior") == set()
        assert members(store, "idx:tag:quant") == set()
        assert members(store, "idx:tag:engineering") == {"acme:1"}

    def test_url_only_change_is_unchanged(self, store, engine):
        """The URL is not part of the fingerprint."""
        engine.reconcile("acme", [posting()], now=NOW)
        moved = posting()
        moved.url = "https://example.com/new-url"

        result = engine.reconcile("acme", [moved], now=LATER)

        assert result.stats.unchanged == 1
        assert load(store).url == "https://example.com/jobs/1"


class TestUnchanged:
    def test_only_last_seen_refreshed(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)
        before = load(store)

        result = engine.reconcile("acme", [posting()], now=LATER)

        after = load(store)
        assert result.stats.unchanged == 1
        assert result.events == []
        assert after.last_seen_at == LATER
        assert after.model_copy(update={"last_seen_at": NOW}) == before


class TestReactivation:
    """A removed listing that reappears before it expires."""

    def test_reappearance_reactivates(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)
        engine.reconcile("acme", [], now=LATER)

        result = engine.reconcile("acme", [posting()], now=LATER + timedelta(hours=1))

        listing = load(store)
        assert result.stats.reactivated == 1
        assert result.events == []
        assert listing.status == ListingStatus.ACTIVE
        assert listing.removed_at is None
        assert listing.expires_at is None
        assert listing.first_seen_at == NOW
        assert members(store, "idx:status:active") == {"acme:1"}
        assert members(store, "idx:status:removed") == set()
        assert feed(store, "feed:removed") == {}

    def test_reactivated_listing_can_be_removed_again(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)
        engine.reconcile("acme", [], now=LATER)
        engine.reconcile("acme", [posting()], now=LATER + timedelta(hours=1))

        result = engine.reconcile("acme", [], now=LATER + timedelta(hours=2))

        assert result.stats.removed == 1
        assert members(store, "idx:status:removed") == {"acme:1"}


class TestIdempotence:
    def test_same_snapshot_twice_same_state(self, store, engine):
        snapshot = [posting("1"), posting("2", title="Senior Quant Trader", department="Trading")]
        engine.reconcile("acme", snapshot, now=NOW)
        once = dump_state(store)

        result = engine.reconcile("acme", snapshot, now=NOW)

        assert dump_state(store) == once
        assert result.events == []
        assert result.stats.unchanged == 2

    def test_empty_snapshot_twice_same_state(self, store, engine):
        engine.reconcile("acme", [posting("1"), posting("2")], now=NOW)
        engine.reconcile("acme", [], now=LATER)
        once = dump_state(store)

        engine.reconcile("acme", [], now=LATER)

        assert dump_state(store) == once


class TestConvergence:
    """A failed listing write is retried by the next cycle."""

    @pytest.fixture
    def flaky_save(self, monkeypatch):
        original = ListingRepository.save
        failures = {"acme:2": 1}

        def save(repo, listing):
            if failures.get(listing.identity, 0) > 0:
                failures[listing.identity] -= 1
                raise PersistenceError("disk I/O error")
            return original(repo, listing)

        monkeypatch.setattr(ListingRepository, "save", save)
        return failures

    def test_failed_write_is_isolated(self, store, engine, flaky_save):
        result = engine.reconcile("acme", [posting("1"), posting("2"), posting("3")], now=NOW)

        assert result.stats.created == 2
        assert result.stats.failed == 1
        assert result.failed_identities == ["acme:2"]
        assert load(store, "2") is None
        assert members(store, "idx:employer:acme") == {"acme:1", "acme:3"}

    def test_rerun_converges_to_clean_run(self, store, engine, flaky_save):
        snapshot = [posting("1"), posting("2"), posting("3")]
        engine.reconcile("acme", snapshot, now=NOW)

        engine.reconcile("acme", snapshot, now=NOW)

        with IndexStore("sqlite:///:memory:") as clean_store:
            ReconciliationEngine(clean_store, removed_retention=timedelta(days=7)).reconcile(
                "acme", snapshot, now=NOW
            )
            expected = dump_state(clean_store)
        assert dump_state(store) == expected

    def test_failed_write_never_causes_removal(self, store, engine, flaky_save):
        """A listing whose update fails is still counted as seen."""
        flaky_save["acme:2"] = 0
        engine.reconcile("acme", [posting("1"), posting("2")], now=NOW)
        flaky_save["acme:2"] = 1

        result = engine.reconcile("acme", [posting("1"), posting("2", title="Senior Data Engineer")], now=LATER)

        assert result.stats.failed == 1
        assert result.stats.removed == 0
        assert members(store, "idx:status:active") == {"acme:1", "acme:2"}

    def test_removal_scan_failure_carries_result(self, store, engine, monkeypatch):
        """Listings applied before the scan failed keep their change events."""

        def intersect(repo, set_keys):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(IndexRepository, "intersect", intersect)

        with pytest.raises(PersistenceError) as exc_info:
            engine.reconcile("acme", [posting("1"), posting("2")], now=NOW)

        result = exc_info.value.result
        assert result is not None
        assert result.stats.created == 2
        assert [e.event for e in result.events] == [ChangeEventType.CREATED] * 2
        assert members(store, "idx:status:active") == {"acme:1", "acme:2"}

        monkeypatch.undo()
        rerun = engine.reconcile("acme", [posting("1")], now=LATER)

        assert rerun.stats.created == 0
        assert rerun.stats.removed == 1


class TestPurge:
    def test_expired_listing_deleted_everywhere(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)
        engine.reconcile("acme", [], now=LATER)

        result = engine.reconcile("acme", [], now=LATER + timedelta(days=8))

        assert result.stats.purged == 1
        assert load(store) is None
        assert dump_state(store)[2] == set()
        sets = {key for key, _ in dump_state(store)[1]}
        assert sets == {keys.EMPLOYERS_KEY}

    def test_unexpired_listing_kept(self, store, engine):
        engine.reconcile("acme", [posting()], now=NOW)
        engine.reconcile("acme", [], now=LATER)

        result = engine.reconcile("acme", [], now=LATER + timedelta(days=6))

        assert result.stats.purged == 0
        assert load(store).status == ListingStatus.REMOVED

    def test_purge_expired_direct_call(self, store, engine):
        engine.reconcile("acme", [posting("1"), posting("2")], now=NOW)
        engine.reconcile("acme", [], now=LATER)

        assert engine.purge_expired("acme", now=LATER + timedelta(days=30)) == 2
        assert engine.purge_expired("acme", now=LATER + timedelta(days=30)) == 0


class TestStats:
    def test_stats_written(self, store, engine):
        engine.reconcile("acme", [posting("1"), posting("2")], now=NOW)

        result = engine.reconcile("acme", [posting("2"), posting("3")], now=LATER)

        stats = result.employer_stats
        assert stats.active_count == 2
        assert stats.total_seen == 3
        assert stats.last_new == 1
        assert stats.last_removed == 1
        assert stats.last_reconciliation_at == LATER
        with store.batch() as batch:
            assert batch.stats.get("acme") == stats

    def test_employer_roster(self, store, engine):
        engine.reconcile("acme", [], now=NOW)
        engine.reconcile("globex", [posting()], now=NOW)

        assert members(store, keys.EMPLOYERS_KEY) == {"acme", "globex"}


class TestSnapshotHandling:
    def test_duplicate_entries_last_wins(self, store, engine):
        result = engine.reconcile(
            "acme", [posting("1", title="Data Engineer"), posting("1", title="Quant Researcher")], now=NOW
        )

        assert result.stats.received == 1
        assert result.stats.created == 1
        assert load(store).title == "Quant Researcher"

    def test_default_clock_used(self, store):
        engine = ReconciliationEngine(store, clock=lambda: NOW)

        result = engine.reconcile("acme", [posting()])

        assert result.reconciled_at == NOW
        assert load(store).first_seen_at == NOW

    @pytest.mark.parametrize("retention", [timedelta(0), timedelta(days=-1)])
    def test_non_positive_retention_rejected(self, store, retention):
        with pytest.raises(ValueError):
            ReconciliationEngine(store, removed_retention=retention)


class TestDeadline:
    def test_timeout_mid_apply(self, store):
        """Deadline passes after the first listing; no removals are computed."""
        ticks = itertools.count(1)
        engine = ReconciliationEngine(store, monotonic=lambda: next(ticks))
        engine.reconcile("acme", [posting("old")], now=NOW)

        with pytest.raises(CycleTimeoutError) as exc_info:
            engine.reconcile("acme", [posting("1"), posting("2"), posting("3")], now=LATER, deadline=2)

        error = exc_info.value
        assert error.employer_id == "acme"
        assert error.processed == 1
        assert error.total == 3
        assert error.phase == "apply"
        assert [e.title for e in error.result.created_events] == ["Data Engineer"]
        assert members(store, "idx:status:active") == {"acme:old", "acme:1"}

    def test_no_deadline_never_times_out(self, store):
        engine = ReconciliationEngine(store, monotonic=lambda: 1e12)

        result = engine.reconcile("acme", [posting()], now=NOW)

        assert result.stats.created == 1

    def test_outcome_values(self):
        assert ListingOutcome.REACTIVATED.value == "reactivated"
