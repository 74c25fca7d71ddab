"""
Nihonto Search — Featured Score Refresh Script

Recomputes featured_score for every available listing. Run it after each
scrape cycle so the "featured" sort reflects new images, certifications and
listing age.

Usage:
    python scripts/score_featured.py
    python scripts/score_featured.py --database-url postgresql+asyncpg://localhost/nihonto --batch-size 1000
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nihonto_search.config import settings
from nihonto_search.main import _configure_logging, create_db_engine
from nihonto_search.store.scoring import DEFAULT_BATCH_SIZE, rescore_featured


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Recompute listings.featured_score for available listings.",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL from the environment.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Listings per transaction (default: {DEFAULT_BATCH_SIZE}).",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    _configure_logging(settings.LOG_LEVEL)

    engine, session_factory = create_db_engine(args.database_url)
    try:
        scored = await rescore_featured(session_factory, batch_size=args.batch_size)
        print(f"Scored {scored} available listings.")
    except Exception as e:
        print(f"Failed to refresh featured scores: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
