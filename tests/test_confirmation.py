import asyncio

import pytest

from conftest import FakeStore
from grailscan.confidence import ConfidenceTier
from grailscan.confirmation import ConfirmationGate
from grailscan.errors import (
    ConfirmationInFlightError,
    FastConfirmUnavailable,
    InvalidTransitionError,
    PersistenceError,
    StaleSelectionError,
)
from grailscan.models import ScanStatus
from grailscan.queue_processor import triage
from grailscan.schemas.candidate import Candidate


def _triaged(batch, candidates, status=None):
    (item,) = batch.add([b"photo"])
    batch.claim_next()
    tier = None
    if candidates:
        score = candidates[0].score
        tier = ConfidenceTier.HIGH if score >= 0.8 else ConfidenceTier.MEDIUM if score >= 0.5 else ConfidenceTier.LOW
    if status is None:
        status = ScanStatus.MATCH_FOUND if tier is ConfidenceTier.HIGH else ScanStatus.NEEDS_REVIEW
        if not candidates:
            status = ScanStatus.NO_MATCH
    return batch.transition(
        item.id,
        status,
        candidates=tuple(candidates),
        confidence_tier=tier,
        uploaded_image_url="https://img.test/photo.jpg",
    )


def _top():
    return Candidate(
        id="cv-300",
        title="Amazing Spider-Man",
        series_name="The Amazing Spider-Man",
        issue_label="300",
        publisher="Marvel",
        year=1988,
        score=0.92,
    )


@pytest.mark.asyncio
async def test_fast_confirm_persists_top_candidate_once(batch):
    store = FakeStore()
    gate = ConfirmationGate(batch, store)
    top = _top()
    item = _triaged(batch, [top, Candidate(id="cv-1", title="Other", score=0.3)])

    record_id = await gate.fast_confirm(item.id)

    assert len(store.requests) == 1
    request = store.requests[0]
    assert request.title == "The Amazing Spider-Man"
    assert request.issue_number == "300"
    assert request.identification.candidate_id == "cv-300"
    assert request.image_url == "https://img.test/photo.jpg"
    done = batch.get(item.id)
    assert done.status is ScanStatus.COMPLETED
    assert done.selected_candidate_id == "cv-300"
    assert done.persisted_record_id == record_id


@pytest.mark.asyncio
async def test_fast_confirm_unavailable_below_high(batch):
    gate = ConfirmationGate(batch, FakeStore())
    item = _triaged(batch, [Candidate(id="a", title="A", score=0.65)])

    with pytest.raises(FastConfirmUnavailable):
        await gate.fast_confirm(item.id)
    assert batch.get(item.id).status is ScanStatus.NEEDS_REVIEW


@pytest.mark.asyncio
async def test_any_offered_candidate_can_be_confirmed(batch):
    store = FakeStore()
    gate = ConfirmationGate(batch, store)
    low = Candidate(id="b", title="B", score=0.3)
    item = _triaged(batch, [Candidate(id="a", title="A", score=0.6), low])

    await gate.confirm(item.id, low)

    assert batch.get(item.id).selected_candidate_id == "b"


@pytest.mark.asyncio
async def test_equal_copy_from_elsewhere_is_stale(batch):
    store = FakeStore()
    gate = ConfirmationGate(batch, store)
    first = _triaged(batch, [_top()])
    second = _triaged(batch, [_top()])

    with pytest.raises(StaleSelectionError):
        await gate.confirm(second.id, first.candidates[0])
    with pytest.raises(StaleSelectionError):
        await gate.confirm(first.id, _top())
    assert store.requests == []
    assert batch.get(first.id).status is ScanStatus.MATCH_FOUND


@pytest.mark.asyncio
async def test_persistence_failure_leaves_item_retryable(batch):
    store = FakeStore(failures=1)
    gate = ConfirmationGate(batch, store)
    item = _triaged(batch, [_top()])
    chosen = item.candidates[0]

    with pytest.raises(PersistenceError):
        await gate.confirm(item.id, chosen)
    after_failure = batch.get(item.id)
    assert after_failure.status is ScanStatus.MATCH_FOUND
    assert after_failure.persisted_record_id is None

    record_id = await gate.confirm(item.id, chosen)
    assert batch.get(item.id).persisted_record_id == record_id
    assert len(store.requests) == 1


@pytest.mark.asyncio
async def test_completed_item_cannot_be_confirmed_or_skipped_again(batch):
    store = FakeStore()
    gate = ConfirmationGate(batch, store)
    item = _triaged(batch, [_top()])
    await gate.confirm(item.id, item.candidates[0])

    with pytest.raises(InvalidTransitionError):
        await gate.confirm(item.id, item.candidates[0])
    with pytest.raises(InvalidTransitionError):
        gate.skip(item.id)
    assert len(store.requests) == 1


@pytest.mark.asyncio
async def test_skipped_item_cannot_be_confirmed(batch):
    store = FakeStore()
    gate = ConfirmationGate(batch, store)
    item = _triaged(batch, [_top()])

    gate.skip(item.id)

    with pytest.raises(InvalidTransitionError):
        await gate.confirm(item.id, item.candidates[0])
    assert store.requests == []


@pytest.mark.asyncio
async def test_concurrent_confirm_and_skip_are_refused(batch):
    store = FakeStore()
    store.gate = asyncio.Event()
    gate = ConfirmationGate(batch, store)
    item = _triaged(batch, [_top()])

    pending = asyncio.create_task(gate.confirm(item.id, item.candidates[0]))
    await asyncio.sleep(0)

    with pytest.raises(ConfirmationInFlightError):
        await gate.confirm(item.id, item.candidates[0])
    with pytest.raises(ConfirmationInFlightError):
        gate.skip(item.id)

    store.gate.set()
    await pending
    assert batch.get(item.id).status is ScanStatus.COMPLETED
    assert len(store.requests) == 1


@pytest.mark.asyncio
async def test_unclassified_item_cannot_be_confirmed(batch):
    gate = ConfirmationGate(batch, FakeStore())
    (item,) = batch.add([b"photo"])

    with pytest.raises(InvalidTransitionError):
        await gate.confirm(item.id, _top())
    with pytest.raises(InvalidTransitionError):
        gate.skip(item.id)


@pytest.mark.asyncio
async def test_classifier_year_out_of_range_can_still_be_confirmed(batch):
    store = FakeStore()
    gate = ConfirmationGate(batch, store)
    result = triage([{"id": "a", "title": "Saga", "score": 0.95, "year": 20}])
    assert result.status is ScanStatus.MATCH_FOUND
    item = _triaged(batch, list(result.candidates))

    record_id = await gate.fast_confirm(item.id)

    assert record_id == "rec-1"
    assert store.requests[0].year is None
    assert batch.get(item.id).status is ScanStatus.COMPLETED
