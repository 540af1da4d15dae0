from __future__ import annotations

import asyncio
import json

from helpers import NEUTRAL_NOTE, FakeModelClient, category_responses, make_settings
from sessionsight.services.store import InMemoryExtractionStore
from sessionsight.workers.extraction_worker import ExtractionWorker, NoteInput


class _FlakyStore(InMemoryExtractionStore):
    async def create_extraction(self, result):
        if result.session_id == "bad":
            raise RuntimeError("insert failed")
        return await super().create_extraction(result)


def test_one_failing_note_does_not_sink_the_batch():
    store = _FlakyStore()
    worker = ExtractionWorker(
        FakeModelClient(categories=category_responses(0.95)),
        store,
        make_settings(max_concurrent_extractions=2),
    )
    notes = [NoteInput("good-1", NEUTRAL_NOTE), NoteInput("bad", NEUTRAL_NOTE), NoteInput("good-2", "   ")]

    results = asyncio.run(worker.process_batch(notes))

    assert [r.session_id for r in results] == ["good-1", "bad", "good-2"]
    assert [r.succeeded for r in results] == [True, False, True]
    assert results[1].error == "insert failed"
    assert results[0].requires_review is False
    assert results[2].requires_review is True
    assert asyncio.run(store.get_extraction(results[0].extraction_id)) is not None


def test_process_inbox_moves_notes_and_writes_results(tmp_path):
    (tmp_path / "session-a.txt").write_text(NEUTRAL_NOTE, encoding="utf-8")
    (tmp_path / "session-b.txt").write_text("", encoding="utf-8")
    worker = ExtractionWorker(FakeModelClient(categories=category_responses(0.95)), InMemoryExtractionStore(), make_settings())

    picked_up = asyncio.run(worker.process_inbox(tmp_path))

    assert picked_up == 2
    assert not list(tmp_path.glob("*.txt"))
    assert (tmp_path / "processed" / "session-a.txt").exists()
    summary = json.loads((tmp_path / "processed" / "session-b.json").read_text(encoding="utf-8"))
    assert summary["requires_review"] is True


def test_empty_inbox_processes_nothing(tmp_path):
    worker = ExtractionWorker(FakeModelClient(), InMemoryExtractionStore(), make_settings())
    assert asyncio.run(worker.process_inbox(tmp_path)) == 0


def test_undecodable_note_is_moved_aside_and_the_rest_still_run(tmp_path):
    (tmp_path / "good.txt").write_text(NEUTRAL_NOTE, encoding="utf-8")
    (tmp_path / "latin1.txt").write_bytes(b"caf\xe9")
    store = InMemoryExtractionStore()
    worker = ExtractionWorker(FakeModelClient(categories=category_responses(0.95)), store, make_settings())

    picked_up = asyncio.run(worker.process_inbox(tmp_path))

    assert picked_up == 2
    assert not (tmp_path / "good.txt").exists()
    assert (tmp_path / "processed" / "good.txt").exists()
    assert (tmp_path / "failed" / "latin1.txt").exists()
    assert asyncio.run(store.get_extraction_by_session("good")) is not None
