"""
CLI tool to run one session note through the extraction pipeline.

Uses the in-memory store, so nothing is persisted; the full result is
printed as JSON.

Usage:
    python scripts/process_note.py <note.txt> [--history prior.txt] [--session-id abc]

Examples:
    # Extract a note and see whether it needs supervisor review
    python scripts/process_note.py notes/session_0412.txt

    # Include prior clinical history as context
    python scripts/process_note.py notes/session_0412.txt --history notes/history_client7.txt
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from sessionsight.logging_config import setup_logging, get_logger
from sessionsight.services.llm_client import OpenAIChatClient
from sessionsight.services.pipeline import ExtractionPipeline
from sessionsight.services.store import InMemoryExtractionStore

setup_logging()
logger = get_logger(__name__)


async def process_note(note_path: Path, history_path: Path | None = None, session_id: str | None = None) -> None:
    """Run the pipeline on one note file and print the result."""
    note_text = note_path.read_text(encoding="utf-8")
    history = history_path.read_text(encoding="utf-8") if history_path else None

    pipeline = ExtractionPipeline(OpenAIChatClient(), InMemoryExtractionStore())
    result = await pipeline.process(note_text, prior_clinical_history=history, session_id=session_id or note_path.stem)

    print(result.model_dump_json(indent=2))
    if result.requires_review:
        print(f"\nFlagged for review: {'; '.join(result.review_reasons)}", file=sys.stderr)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one session note through the extraction pipeline")
    parser.add_argument("note", type=Path, help="Path to the session note (.txt)")
    parser.add_argument("--history", type=Path, help="Path to prior clinical history text")
    parser.add_argument("--session-id", help="Session identifier (defaults to the note's file name)")

    args = parser.parse_args()

    if not args.note.is_file():
        parser.error(f"Note file not found: {args.note}")

    asyncio.run(process_note(args.note, args.history, args.session_id))


if __name__ == "__main__":
    main()
