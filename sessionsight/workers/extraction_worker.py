"""
Extraction Worker.

Runs session notes through the extraction pipeline in bounded parallel
batches. Notes are isolated from each other: one note's failure is
logged and reported, never fatal to the batch.

Start with:
    python -m sessionsight.workers.extraction_worker

The standalone runner polls ``notes_inbox_dir`` for ``*.txt`` files,
processes them, and moves each to ``processed/`` (with a ``.json``
result) or ``failed/``.
"""

from __future__ import annotations

import asyncio
import json
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from uuid import UUID

from dotenv import load_dotenv

from sessionsight.config import Settings, get_settings
from sessionsight.logging_config import get_logger, setup_logging
from sessionsight.services.llm_client import ModelClient, OpenAIChatClient
from sessionsight.services.pipeline import ExtractionPipeline
from sessionsight.services.store import ExtractionStore, InMemoryExtractionStore

logger = get_logger(__name__)


@dataclass
class NoteInput:
    session_id: str
    text: str
    prior_clinical_history: Optional[str] = None


@dataclass
class BatchItemResult:
    session_id: str
    succeeded: bool
    extraction_id: Optional[UUID] = None
    requires_review: bool = False
    error: Optional[str] = None


class ExtractionWorker:
    """
    Processes notes concurrently, bounded by ``max_concurrent_extractions``.

    Flow per note:
    1. Acquire a slot from the semaphore
    2. Run the full pipeline (extraction, guardrail, routing, persist)
    3. Report success or the error, without touching other notes
    """

    def __init__(
        self,
        model_client: ModelClient,
        store: ExtractionStore,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._pipeline = ExtractionPipeline(model_client, store, self._settings)
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_extractions)
        self._running = False

    async def process_batch(self, notes: list[NoteInput]) -> list[BatchItemResult]:
        results = await asyncio.gather(*(self._process_one(note) for note in notes))
        failed = sum(1 for r in results if not r.succeeded)
        logger.info("batch_processed", total=len(results), failed=failed)
        return list(results)

    async def _process_one(self, note: NoteInput) -> BatchItemResult:
        async with self._semaphore:
            try:
                result = await self._pipeline.process(
                    note.text,
                    prior_clinical_history=note.prior_clinical_history,
                    session_id=note.session_id,
                )
            except Exception as e:
                logger.error("note_processing_error", session_id=note.session_id, error=str(e))
                return BatchItemResult(session_id=note.session_id, succeeded=False, error=str(e))

        return BatchItemResult(
            session_id=note.session_id,
            succeeded=True,
            extraction_id=result.id,
            requires_review=result.requires_review,
        )

    # ── Directory polling ────────────────────────────────────────

    async def start(self, inbox: Path) -> None:
        self._running = True
        poll_interval = self._settings.poll_interval_seconds
        logger.info("extraction_worker_started", inbox=str(inbox), poll_interval=poll_interval)

        while self._running:
            try:
                processed = await self.process_inbox(inbox)
            except Exception as e:
                logger.error("extraction_worker_error", error=str(e))
                processed = 0
            if not processed:
                await asyncio.sleep(poll_interval)

    async def stop(self) -> None:
        self._running = False
        logger.info("extraction_worker_stopped")

    async def process_inbox(self, inbox: Path) -> int:
        """Process every note currently in the inbox. Returns how many were picked up."""
        paths = sorted(inbox.glob("*.txt"))
        if not paths:
            return 0

        processed_dir = inbox / "processed"
        failed_dir = inbox / "failed"
        processed_dir.mkdir(exist_ok=True)
        failed_dir.mkdir(exist_ok=True)

        readable: list[Path] = []
        notes: list[NoteInput] = []
        for path in paths:
            try:
                text = path.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError) as e:
                logger.error("note_read_error", session_id=path.stem, path=str(path), error=str(e))
                path.rename(failed_dir / path.name)
                continue
            readable.append(path)
            notes.append(NoteInput(session_id=path.stem, text=text))

        results = await self.process_batch(notes) if notes else []

        for path, item in zip(readable, results):
            if item.succeeded:
                summary = {"extraction_id": str(item.extraction_id), "requires_review": item.requires_review}
                (processed_dir / f"{path.stem}.json").write_text(json.dumps(summary) + "\n", encoding="utf-8")
                path.rename(processed_dir / path.name)
            else:
                path.rename(failed_dir / path.name)
        return len(paths)


def _build_store(settings: Settings) -> ExtractionStore:
    if settings.supabase_url and settings.supabase_service_key:
        from sessionsight.db import SupabaseExtractionStore

        return SupabaseExtractionStore()
    logger.warning("supabase_not_configured_using_memory_store")
    return InMemoryExtractionStore()


async def main() -> None:
    load_dotenv(".env.local")
    setup_logging()
    settings = get_settings()

    inbox = Path(settings.notes_inbox_dir)
    inbox.mkdir(parents=True, exist_ok=True)
    worker = ExtractionWorker(OpenAIChatClient(settings), _build_store(settings), settings)

    loop = asyncio.get_running_loop()

    def shutdown_handler() -> None:
        logger.info("shutdown_signal_received")
        asyncio.ensure_future(worker.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_handler)
        except NotImplementedError:
            pass

    try:
        await worker.start(inbox)
    except KeyboardInterrupt:
        await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
