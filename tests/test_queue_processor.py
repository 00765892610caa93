import asyncio

import pytest

from conftest import FakeSource, FakeUploader, candidate, make_image, wait_until
from grailscan.confidence import ConfidenceTier
from grailscan.errors import ClassificationError
from grailscan.models import ScanStatus
from grailscan.queue_processor import QueueProcessor, triage


def _processor(batch, source, uploader=None, **kwargs):
    return QueueProcessor(batch, source, uploader or FakeUploader(), **kwargs)


def test_triage_filters_before_tiering():
    raw = [
        candidate("a", 0.65, title="Giant-Size X-Men Facsimile Edition"),
        candidate("b", 0.40, title="Giant-Size X-Men"),
    ]

    result = triage(raw)

    assert [c.id for c in result.candidates] == ["b"]
    assert result.tier is ConfidenceTier.LOW
    assert result.status is ScanStatus.NEEDS_REVIEW
    assert result.suppressed_count == 1


def test_triage_keeps_top_five_survivors():
    raw = [candidate("r", 0.99, is_reprint_flagged=True)] + [candidate(str(i), 0.9 - i / 100) for i in range(8)]

    result = triage(raw, max_candidates=5)

    assert [c.id for c in result.candidates] == ["0", "1", "2", "3", "4"]
    assert result.status is ScanStatus.MATCH_FOUND


def test_triage_empty_and_fully_filtered():
    assert triage([]).status is ScanStatus.NO_MATCH
    filtered = triage([candidate("a", 0.9, title="Facsimile")])
    assert filtered.status is ScanStatus.NO_MATCH
    assert filtered.suppressed_count == 1
    kept = triage([candidate("a", 0.9, title="Facsimile")], exclude_reprints=False)
    assert kept.status is ScanStatus.MATCH_FOUND


@pytest.mark.asyncio
async def test_items_classified_in_submission_order(batch, processing_watch):
    widths = [31, 47, 12, 58, 20]
    source = FakeSource({w: [candidate(f"c{w}", 0.9)] for w in widths})
    batch.add([make_image(w) for w in widths])
    processor = _processor(batch, source)

    processed = await processor.kick()

    assert processed == len(widths)
    assert source.calls == widths
    assert source.max_active == 1
    assert processing_watch["max"] == 1
    assert all(item.status is ScanStatus.MATCH_FOUND for item in batch.items)


@pytest.mark.asyncio
async def test_next_item_waits_for_in_flight_item(batch):
    source = FakeSource({10: [candidate("a", 0.9)], 11: [candidate("b", 0.6)]})
    gate = asyncio.Event()
    source.gates[10] = gate
    first, second = batch.add([make_image(10), make_image(11)])
    processor = _processor(batch, source)

    task = processor.kick()
    await wait_until(lambda: source.calls == [10])
    await asyncio.sleep(0.05)

    assert source.calls == [10]
    assert batch.get(first.id).status is ScanStatus.PROCESSING
    assert batch.get(second.id).status is ScanStatus.QUEUED

    gate.set()
    await task
    assert source.calls == [10, 11]
    assert batch.get(second.id).status is ScanStatus.NEEDS_REVIEW


@pytest.mark.asyncio
async def test_rapid_kicks_do_not_double_claim(batch, processing_watch):
    source = FakeSource({w: [candidate(str(w), 0.7)] for w in (13, 14, 15)})
    batch.add([make_image(w) for w in (13, 14, 15)])
    processor = _processor(batch, source)

    tasks = [processor.kick() for _ in range(5)]
    await asyncio.gather(*tasks)

    assert len({id(t) for t in tasks}) == 1
    assert source.calls == [13, 14, 15]
    assert processing_watch["max"] == 1


@pytest.mark.asyncio
async def test_failure_is_isolated(batch):
    source = FakeSource(
        {
            21: [candidate("a", 0.93)],
            22: ClassificationError("service unavailable"),
            23: [candidate("c", 0.55)],
        }
    )
    first, second, third = batch.add([make_image(w) for w in (21, 22, 23)])
    processor = _processor(batch, source)

    await processor.kick()

    assert batch.get(first.id).status is ScanStatus.MATCH_FOUND
    failed = batch.get(second.id)
    assert failed.status is ScanStatus.NO_MATCH
    assert failed.error is not None
    assert "service unavailable" in failed.error
    assert batch.get(third.id).status is ScanStatus.NEEDS_REVIEW
    assert batch.next_queued() is None


@pytest.mark.asyncio
async def test_unexpected_errors_become_no_match(batch):
    source = FakeSource({30: RuntimeError("boom")})
    (item,) = batch.add([make_image(30)])

    await _processor(batch, source).kick()

    result = batch.get(item.id)
    assert result.status is ScanStatus.NO_MATCH
    assert result.error == "Failed to analyze image"


@pytest.mark.asyncio
async def test_empty_result_is_not_an_error(batch):
    source = FakeSource({40: []})
    (item,) = batch.add([make_image(40)])

    await _processor(batch, source).kick()

    result = batch.get(item.id)
    assert result.status is ScanStatus.NO_MATCH
    assert result.error is None
    assert result.uploaded_image_url == f"https://img.test/{item.id}.jpg"


@pytest.mark.asyncio
async def test_upload_failure_skips_classification(batch):
    source = FakeSource({41: [candidate("a", 0.9)]})
    (item,) = batch.add([make_image(41)])

    await _processor(batch, source, FakeUploader(fail=True)).kick()

    assert source.calls == []
    assert batch.get(item.id).status is ScanStatus.NO_MATCH
    assert batch.get(item.id).error is not None


@pytest.mark.asyncio
async def test_unreadable_image_becomes_no_match(batch):
    source = FakeSource()
    (item,) = batch.add([b"definitely not an image"])

    await _processor(batch, source).kick()

    assert batch.get(item.id).status is ScanStatus.NO_MATCH
    assert "Could not read image" in batch.get(item.id).error


@pytest.mark.asyncio
async def test_reset_discards_late_result(batch):
    source = FakeSource({50: [candidate("a", 0.95)]})
    gate = asyncio.Event()
    source.gates[50] = gate
    batch.add([make_image(50)])
    processor = _processor(batch, source)

    task = processor.kick()
    await wait_until(lambda: source.calls == [50])
    batch.reset()
    gate.set()
    await task

    assert len(batch) == 0
    assert source.finished == [50]
