from grailscan.history import ScanHistory
from grailscan.schemas.candidate import Candidate


def _candidate(cid="cv-1", issue="1"):
    return Candidate(
        id=cid,
        title="Chapter One",
        series_name="Saga",
        issue_label=issue,
        publisher="Image",
        year=2012,
        score=0.9,
        cover_url="https://cdn.test/saga.jpg",
    )


def test_saves_newest_first(tmp_path):
    history = ScanHistory(tmp_path / "recent.json")

    assert history.save(_candidate("cv-1", "1"), record_id="rec-1", scan_item_id="scan-1")
    assert history.save(_candidate("cv-2", "2"), record_id="rec-2", scan_item_id="scan-2", image_url="file:///x.jpg")

    entries = history.load()
    assert [e.record_id for e in entries] == ["rec-2", "rec-1"]
    assert entries[0].title == "Saga"
    assert entries[0].issue_number == "2"
    assert entries[0].image_url == "file:///x.jpg"
    assert entries[1].cover_url == "https://cdn.test/saga.jpg"


def test_list_is_capped_and_limited(tmp_path):
    history = ScanHistory(tmp_path / "recent.json", max_entries=3)
    for n in range(5):
        history.save(_candidate(f"cv-{n}", str(n)), record_id=f"rec-{n}", scan_item_id=f"scan-{n}")

    assert [e.record_id for e in history.load(10)] == ["rec-4", "rec-3", "rec-2"]
    assert len(history.load(1)) == 1


def test_save_failure_is_reported(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    history = ScanHistory(blocker / "recent.json")

    assert history.save(_candidate(), record_id="rec-1", scan_item_id="scan-1") is False
    assert history.load() == []


def test_unreadable_history_is_ignored(tmp_path):
    path = tmp_path / "recent.json"
    path.write_bytes(b"\xff\xfe not json")

    assert ScanHistory(path).load() == []
