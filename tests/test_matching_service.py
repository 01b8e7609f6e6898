"""Tests for the matching service facade, single and batch"""
import time
from unittest.mock import Mock

import pytest

from libs.items import ItemKind, InMemoryRecordStore
from libs.items.payloads import serialize_items
from libs.matching import (
    ConfigurationError, MatchingConfig, MatchingService, RetrievalError, create_matching_service
)
from libs.observability import get_metrics_collector, MatchingMetrics


class FlakyLostStore(InMemoryRecordStore):
    """Lost store that fails, or stalls, for queries on one category"""

    def __init__(self, records=(), fail_category=None, slow_category=None, delay=0.5):
        super().__init__(ItemKind.LOST, records)
        self.fail_category = fail_category
        self.slow_category = slow_category
        self.delay = delay

    def find(self, record_filter=None):
        categories = {alt.category for alt in record_filter.any_of} if record_filter else set()
        if self.fail_category in categories:
            raise ConnectionError("replica unavailable")
        if self.slow_category in categories:
            time.sleep(self.delay)
        return super().find(record_filter)


def _recorded(name):
    return get_metrics_collector().get_stats().get(name, {}).get("count", 0)


@pytest.fixture
def populated(make_lost, make_found, found_store):
    lost_store = InMemoryRecordStore(ItemKind.LOST, [
        make_lost("backpack", location="Library", when="2024-01-10"),
        make_lost("phone", item_name="Black iPhone", category="Electronics",
                  description="iPhone 13 in a black case", location="Gym", when="2024-01-09"),
        make_lost("resolved-book", item_name="Notebook", category="Books",
                  description="Spiral notebook", status="Resolved", when="2024-01-09"),
    ])
    found_store.save(make_found("found-backpack", location="Library Building", when="2024-01-11"))
    found_store.save(make_found("found-phone", item_name="iPhone", category="Electronics",
                                description="Black iPhone 13 with case", location="Gym", when="2024-01-10"))
    return lost_store, found_store


def test_find_matches_returns_top_lost_item(populated, make_found):
    lost_store, found_store = populated
    service = MatchingService(lost_store, found_store)

    matches = service.find_matches(found_store.find_by_id("found-backpack"))

    assert matches[0].candidate.record_id == "backpack"
    assert matches[0].similarity_score >= 90
    assert all(m.candidate.kind is ItemKind.LOST for m in matches)


def test_reverse_direction_agrees_with_forward(populated):
    lost_store, found_store = populated
    service = MatchingService(lost_store, found_store)
    lost = lost_store.find_by_id("backpack")
    found = found_store.find_by_id("found-backpack")

    forward = {m.candidate.record_id: m.similarity_score for m in service.find_matches(found)}
    reverse = {m.candidate.record_id: m.similarity_score for m in service.find_matches_for_lost_item(lost)}

    assert forward["backpack"] == reverse["found-backpack"] == service.scorer.score(lost, found).total


def test_wrong_kind_is_rejected(populated):
    lost_store, found_store = populated
    service = MatchingService(lost_store, found_store)

    with pytest.raises(ValueError):
        service.find_matches(lost_store.find_by_id("backpack"))
    with pytest.raises(ValueError):
        service.find_matches_for_lost_item(found_store.find_by_id("found-backpack"))


def test_matching_is_read_only(populated):
    lost_store, found_store = populated
    service = MatchingService(lost_store, found_store)
    before = list(lost_store.find())

    service.find_matches(found_store.find_by_id("found-backpack"))

    after = list(lost_store.find())
    assert after == before
    assert all(r.views == 0 and r.status in ("Pending", "Resolved") for r in after)


def test_anchor_without_description_yields_no_matches(populated, make_found):
    lost_store, found_store = populated
    service = MatchingService(lost_store, found_store)

    assert service.find_matches(make_found("blank", description="")) == []


def test_invalid_config_fails_at_construction(populated):
    lost_store, found_store = populated

    with pytest.raises(ConfigurationError):
        MatchingService(lost_store, found_store, MatchingConfig(min_score=120))


def test_stores_must_match_their_roles(populated):
    lost_store, found_store = populated

    with pytest.raises(ValueError):
        create_matching_service(found_store, lost_store)


def test_retrieval_failure_propagates_as_retrieval_error(make_found, found_store):
    lost_store = FlakyLostStore(fail_category="Accessories")
    service = MatchingService(lost_store, found_store)
    errors_before = _recorded(MatchingMetrics.RETRIEVAL_ERROR)

    with pytest.raises(RetrievalError):
        service.find_matches(make_found())

    assert _recorded(MatchingMetrics.RETRIEVAL_ERROR) == errors_before + 1


def test_match_outcome_degrades_on_retrieval_failure(make_found, found_store):
    service = MatchingService(FlakyLostStore(fail_category="Accessories"), found_store)

    outcome = service.match_outcome(make_found())

    assert outcome.matching_failed
    assert outcome.matches == []
    assert "replica unavailable" in outcome.error


@pytest.mark.asyncio
async def test_batch_isolates_one_failing_item(make_lost, make_found, found_store):
    lost_store = FlakyLostStore([
        make_lost("backpack"),
        make_lost("phone", item_name="iPhone", category="Electronics", description="Black iPhone 13"),
    ], fail_category="Electronics")
    service = MatchingService(lost_store, found_store)
    items = [
        make_found("f-backpack"),
        make_found("f-phone", item_name="iPhone", category="Electronics", description="Black iPhone 13"),
        make_found("f-backpack-2", location="Library Building"),
    ]

    outcomes = await service.find_matches_for_items(items)

    assert [o.item.record_id for o in outcomes] == ["f-backpack", "f-phone", "f-backpack-2"]
    assert [o.matching_failed for o in outcomes] == [False, True, False]
    assert outcomes[0].matches[0].candidate.record_id == "backpack"
    assert outcomes[2].matches[0].candidate.record_id == "backpack"
    assert outcomes[1].matches == []


@pytest.mark.asyncio
async def test_batch_timeout_only_affects_slow_item(make_lost, make_found, found_store):
    lost_store = FlakyLostStore([make_lost("backpack")], slow_category="Books", delay=0.5)
    service = MatchingService(lost_store, found_store)
    items = [
        make_found("slow", item_name="Novel", category="Books", description="Paperback novel"),
        make_found("fast"),
    ]

    outcomes = await service.find_matches_for_items(items, timeout=0.1)

    assert outcomes[0].matching_failed
    assert "timed out" in outcomes[0].error
    assert not outcomes[1].matching_failed
    assert outcomes[1].matches[0].candidate.record_id == "backpack"


@pytest.mark.asyncio
async def test_batch_larger_than_worker_pool_does_not_time_out_queued_items(make_lost, make_found, found_store):
    lost_store = FlakyLostStore([make_lost("backpack")], slow_category="Accessories", delay=0.2)
    service = MatchingService(lost_store, found_store, max_workers=2)
    items = [make_found(f"found-{i}") for i in range(6)]

    # each retrieval takes 0.2s; queued behind the others they would exceed 0.5s
    outcomes = await service.find_matches_for_items(items, timeout=0.5)

    assert [o.item.record_id for o in outcomes] == [f"found-{i}" for i in range(6)]
    assert not any(o.matching_failed for o in outcomes)
    assert all(o.matches[0].candidate.record_id == "backpack" for o in outcomes)


@pytest.mark.asyncio
async def test_timed_out_worker_holds_its_slot_until_it_finishes(make_lost, make_found, found_store):
    lost_store = FlakyLostStore([make_lost("backpack")], slow_category="Books", delay=0.3)
    service = MatchingService(lost_store, found_store, max_workers=1)
    items = [
        make_found("slow", item_name="Novel", category="Books", description="Paperback novel"),
        make_found("fast"),
    ]

    outcomes = await service.find_matches_for_items(items, timeout=0.15)

    assert outcomes[0].matching_failed
    assert not outcomes[1].matching_failed
    assert outcomes[1].matches[0].candidate.record_id == "backpack"


@pytest.mark.asyncio
async def test_empty_batch(populated):
    lost_store, found_store = populated

    assert await MatchingService(lost_store, found_store).find_matches_for_items([]) == []


def test_worker_count_must_be_positive(populated):
    lost_store, found_store = populated

    with pytest.raises(ConfigurationError):
        MatchingService(lost_store, found_store, max_workers=0)
    assert create_matching_service(lost_store, found_store, max_workers=3).max_workers == 3


@pytest.mark.asyncio
async def test_find_matches_async_raises_retrieval_error_on_timeout(make_found, found_store):
    service = MatchingService(FlakyLostStore(slow_category="Accessories", delay=0.3), found_store)

    with pytest.raises(RetrievalError):
        await service.find_matches_async(make_found(), timeout=0.05)


@pytest.mark.asyncio
async def test_batch_mixes_directions(populated):
    lost_store, found_store = populated
    service = MatchingService(lost_store, found_store)

    outcomes = await service.find_matches_for_items([
        found_store.find_by_id("found-phone"),
        lost_store.find_by_id("phone"),
    ])

    assert outcomes[0].matches[0].candidate.record_id == "phone"
    assert outcomes[1].matches[0].candidate.record_id == "found-phone"


def test_serialized_listing_embeds_potential_matches(populated, make_found, found_store):
    lost_store, _ = populated
    service = MatchingService(FlakyLostStore(list(lost_store.find()), fail_category="Electronics"), found_store)
    records = [found_store.find_by_id("found-backpack"), found_store.find_by_id("found-phone")]
    outcomes = [service.match_outcome(r) for r in records]

    payload = serialize_items(records, outcomes)

    assert payload["success"] is True
    assert payload["count"] == 2
    backpack, phone = payload["data"]
    assert backpack["potentialMatches"][0]["lostItem"]["itemName"] == "Blue Backpack"
    assert backpack["potentialMatches"][0]["similarityScore"] >= 90
    assert "matchingFailed" not in backpack
    assert phone["potentialMatches"] == []
    assert phone["matchingFailed"] is True
    assert phone["itemName"] == "iPhone"


def test_serialize_items_without_outcomes_has_no_matches(populated):
    _, found_store = populated

    payload = serialize_items(list(found_store.find()))

    assert all("potentialMatches" not in item for item in payload["data"])
    with pytest.raises(ValueError):
        serialize_items(list(found_store.find()), outcomes=[])
