#!/usr/bin/env python3
"""
Create the default document sequences (invoice, claim_batch, prescription, ...)
that are missing from the database. Existing sequences are left untouched.

Usage:
    python scripts/seed_sequences.py --dry-run  # Show what would be created
    python scripts/seed_sequences.py            # Create missing sequences
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.core.database.session import async_session
from src.core.documents.service import DEFAULT_SEQUENCES, DocumentNumberingService
from src.core.logging_config import configure_logging

logger = logging.getLogger("seed_sequences")


async def seed(dry_run: bool) -> list[str]:
    async with async_session() as session:
        service = DocumentNumberingService(session)
        if dry_run:
            existing = {s.document_type for s in await service.list_sequences()}
            return [t for t, _, _ in DEFAULT_SEQUENCES if t not in existing]
        created = await service.seed_default_sequences()
        await session.commit()
        return created


async def main():
    """Main function."""
    import argparse

    parser = argparse.ArgumentParser(description="Seed default document sequences")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list the sequences that would be created",
    )
    args = parser.parse_args()

    configure_logging()
    types = await seed(dry_run=args.dry_run)
    if not types:
        logger.info("All default document sequences already exist")
    elif args.dry_run:
        logger.info("Would create: %s", ", ".join(types))
    else:
        logger.info("Created: %s", ", ".join(types))


if __name__ == "__main__":
    asyncio.run(main())
