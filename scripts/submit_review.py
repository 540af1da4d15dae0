"""
CLI tool for supervisors to review a flagged extraction in Supabase.

Usage:
    python scripts/submit_review.py show <extraction_id>
    python scripts/submit_review.py approve <extraction_id> --reviewer "Dr. Lee" [--notes "..."]
    python scripts/submit_review.py dismiss <extraction_id> --reviewer "Dr. Lee" [--version 2]
"""

import argparse
import asyncio
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from sessionsight.db import SupabaseExtractionStore
from sessionsight.errors import SessionSightError
from sessionsight.logging_config import setup_logging, get_logger
from sessionsight.schemas.review import ReviewStatus
from sessionsight.services.review_service import ReviewService

setup_logging()
logger = get_logger(__name__)

ACTIONS = {"approve": ReviewStatus.APPROVED, "dismiss": ReviewStatus.DISMISSED}


async def show(service: ReviewService, extraction_id: str) -> None:
    detail = await service.get_review_detail(extraction_id)
    print(detail.model_dump_json(indent=2, exclude={"data"}))


async def submit(
    service: ReviewService,
    extraction_id: str,
    action: ReviewStatus,
    reviewer: str,
    notes: str | None,
    version: int | None,
) -> None:
    review = await service.submit_review(extraction_id, action, reviewer, notes=notes, expected_version=version)
    print(f"Recorded {review.action.value} by {review.reviewer_name} ({review.id})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Review a flagged session-note extraction")
    parser.add_argument("command", choices=["show", *ACTIONS], help="What to do")
    parser.add_argument("extraction_id", help="Extraction UUID")
    parser.add_argument("--reviewer", help="Reviewer name (required for approve/dismiss)")
    parser.add_argument("--notes", help="Optional review notes")
    parser.add_argument("--version", type=int, help="Version you reviewed; rejects the write if it changed since")

    args = parser.parse_args()

    if args.command != "show" and not args.reviewer:
        parser.error("--reviewer is required to approve or dismiss")

    service = ReviewService(SupabaseExtractionStore())
    try:
        if args.command == "show":
            asyncio.run(show(service, args.extraction_id))
        else:
            asyncio.run(submit(
                service,
                args.extraction_id,
                ACTIONS[args.command],
                args.reviewer,
                args.notes,
                args.version,
            ))
    except SessionSightError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
