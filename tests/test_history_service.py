"""HistoryLedger and ExportService tests."""

from __future__ import annotations

import base64

import pytest

from modules.errors import FormatError
from modules.services.export_service import ExportService
from modules.services.history_service import HistoryEntry, HistoryLedger


def make_entry(index: int) -> HistoryEntry:
    return HistoryEntry(
        id=f"2024-03-09T10:00:0{index}-{index}",
        image_reference="data:image/png;base64,AAAA",
        file_name=f"created-{index}.png",
        created_at=f"2024-03-09 10:00:0{index}",
    )


def test_append_is_newest_first():
    ledger = HistoryLedger()
    for index in range(3):
        ledger.append(make_entry(index))

    assert [entry.file_name for entry in ledger.entries()] == [
        "created-2.png",
        "created-1.png",
        "created-0.png",
    ]
    assert ledger.latest() == make_entry(2)
    assert len(ledger) == 3


@pytest.mark.parametrize("size", [0, 1, 7])
def test_clear_empties_ledger(size):
    ledger = HistoryLedger()
    for index in range(size):
        ledger.append(make_entry(index))

    ledger.clear()

    assert len(ledger) == 0
    assert ledger.entries() == ()
    assert ledger.latest() is None


def test_entries_are_immutable_snapshots():
    ledger = HistoryLedger()
    ledger.append(make_entry(0))
    snapshot = ledger.entries()

    ledger.append(make_entry(1))

    assert len(snapshot) == 1
    with pytest.raises(AttributeError):
        snapshot[0].file_name = "changed.png"  # type: ignore[misc]


def test_export_writes_decoded_bytes(tmp_path):
    exporter = ExportService(tmp_path)
    reference = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode("ascii")

    path = exporter.save_image(reference, "edited-cat.png", folder="2024-03-09T10:00:00-1")

    assert path.read_bytes() == b"png-bytes"
    assert path.name == "edited-cat.png"
    assert path.parent.parent == tmp_path
    assert ":" not in path.parent.name


def test_export_adds_extension(tmp_path):
    exporter = ExportService(tmp_path)
    reference = "data:image/jpeg;base64," + base64.b64encode(b"jpg").decode("ascii")

    path = exporter.save_image(reference, "snapshot")

    assert path.name == "snapshot.jpg"


def test_export_rejects_malformed_reference(tmp_path):
    with pytest.raises(FormatError):
        ExportService(tmp_path).save_image("not-a-data-url", "x.png")


def test_export_writes_each_key_once(tmp_path, monkeypatch):
    exporter = ExportService(tmp_path)
    reference = "data:image/png;base64," + base64.b64encode(b"png").decode("ascii")
    writes = []
    original = exporter.save_image

    def counting_save(*args, **kwargs):
        writes.append(args[1])
        return original(*args, **kwargs)

    monkeypatch.setattr(exporter, "save_image", counting_save)

    first = exporter.export("entry-1", reference, "a.png")
    second = exporter.export("entry-1", reference, "a.png")

    assert first == second
    assert writes == ["a.png"]


def test_prune_removes_files_no_longer_shown(tmp_path):
    exporter = ExportService(tmp_path)
    reference = "data:image/png;base64," + base64.b64encode(b"png").decode("ascii")
    kept = exporter.export("entry-2", reference, "b.png")
    dropped = exporter.export("entry-1", reference, "a.png")

    exporter.prune(["entry-2"])

    assert kept.exists()
    assert not dropped.exists()
    assert not dropped.parent.exists()
    assert exporter.exported_keys() == ("entry-2",)
