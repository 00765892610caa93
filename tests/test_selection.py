from grailscan.confidence import ConfidenceTier, ScanCheckpoint
from grailscan.models import ScanItem, ScanStatus
from grailscan.schemas.candidate import Candidate
from grailscan.selection import (
    ReviewReason,
    build_review,
    describe_candidate,
    fast_confirm_candidate,
    group_by_tier,
    preselect,
)


def _c(cid, score, **extra):
    return Candidate(id=cid, title=f"Title {cid}", score=score, **extra)


def _item(status, candidates=(), **extra):
    tier = None
    if candidates:
        score = candidates[0].score
        tier = ConfidenceTier.HIGH if score >= 0.8 else ConfidenceTier.MEDIUM if score >= 0.5 else ConfidenceTier.LOW
    return ScanItem(image_data=b"x", status=status, candidates=tuple(candidates), confidence_tier=tier, **extra)


def test_grouping_preserves_classifier_order_within_tiers():
    candidates = [_c("a", 0.7), _c("b", 0.95), _c("c", 0.3), _c("d", 0.7), _c("e", 0.81)]

    sections = group_by_tier(candidates)

    assert [c.id for c in sections.high] == ["b", "e"]
    assert [c.id for c in sections.medium] == ["a", "d"]
    assert [c.id for c in sections.low] == ["c"]
    assert len(sections) == 5
    assert [tier for tier, _ in sections.non_empty()] == [
        ConfidenceTier.HIGH,
        ConfidenceTier.MEDIUM,
        ConfidenceTier.LOW,
    ]


def test_preselect_first_high_only():
    assert preselect([_c("a", 0.6), _c("b", 0.85), _c("c", 0.9)]) == "b"
    assert preselect([_c("a", 0.6), _c("b", 0.4)]) is None
    assert preselect([]) is None


def test_fast_confirm_only_for_high_match_found():
    top = _c("a", 0.92)
    assert fast_confirm_candidate(_item(ScanStatus.MATCH_FOUND, [top, _c("b", 0.5)])) is top
    assert fast_confirm_candidate(_item(ScanStatus.NEEDS_REVIEW, [_c("a", 0.65)])) is None
    assert fast_confirm_candidate(_item(ScanStatus.NO_MATCH)) is None


def test_review_of_high_match():
    item = _item(ScanStatus.MATCH_FOUND, [_c("a", 0.92), _c("b", 0.55)], uploaded_image_url="https://img.test/a.jpg")

    view = build_review(item)

    assert view.reason is ReviewReason.MATCHES
    assert view.preselected_id == "a"
    assert view.fast_confirm_available
    assert not view.offer_disable_filter
    assert view.checkpoint is ScanCheckpoint.LOCKED_IN
    assert view.checkpoint_label == "Locked in"
    assert view.image_url == "https://img.test/a.jpg"
    assert view.can_skip


def test_review_distinguishes_empty_outcomes():
    failed = build_review(_item(ScanStatus.NO_MATCH, error="Failed to analyze image"))
    empty = build_review(_item(ScanStatus.NO_MATCH))
    filtered = build_review(_item(ScanStatus.NO_MATCH, suppressed_count=2))

    assert failed.reason is ReviewReason.FAILED
    assert empty.reason is ReviewReason.NO_RESULTS
    assert filtered.reason is ReviewReason.FILTERED_OUT
    assert filtered.offer_disable_filter
    assert len({failed.message, empty.message, filtered.message}) == 3
    assert not empty.fast_confirm_available


def test_filter_offer_not_repeated_when_filter_already_off():
    view = build_review(_item(ScanStatus.NO_MATCH, suppressed_count=2, exclude_reprints=False))
    assert view.reason is ReviewReason.NO_RESULTS


def test_terminal_items_offer_nothing():
    item = _item(ScanStatus.SKIPPED, [_c("a", 0.95)])
    view = build_review(item)
    assert view.reason is ReviewReason.CLOSED
    assert len(view.sections) == 0
    assert not view.fast_confirm_available
    assert not view.can_skip


def test_describe_candidate():
    candidate = Candidate(
        id="1", title="Origin", series_name="Wolverine", issue_label="1", publisher="Marvel", year=2001, score=0.82
    )
    assert describe_candidate(candidate) == "Wolverine #1 · Marvel · 2001 (High 82%)"
