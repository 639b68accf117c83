#!/usr/bin/env python3
"""
Retire duplicate active documents and (re)create the one-active-per-type index.

Keeps the most recently created active row for every
(tenant, owner, doc_type) key. Safe to re-run.

Usage:
    python scripts/reconcile_active_documents.py            # reconcile and build the index
    python scripts/reconcile_active_documents.py --dry-run  # report only
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from origination.core.logging import configure_logging
from origination.db.session import AsyncSessionLocal, engine
from origination.services.reconciliation import create_active_document_index, reconcile_active_documents

logger = logging.getLogger("origination.scripts.reconcile")


async def main(dry_run: bool) -> None:
    async with AsyncSessionLocal() as session:
        report = await reconcile_active_documents(session)
        if dry_run:
            await session.rollback()
        else:
            await session.commit()
    logger.info(
        "Reconciliation finished",
        extra={
            "dry_run": dry_run,
            "duplicate_keys": report.duplicate_keys,
            "retired_ids": [str(value) for value in report.retired_ids],
        },
    )
    if not dry_run:
        async with engine.begin() as conn:
            await create_active_document_index(conn)
        logger.info("Active document index ensured")
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--dry-run", action="store_true", help="report duplicates without changing rows")
    args = parser.parse_args()
    configure_logging()
    asyncio.run(main(args.dry_run))
