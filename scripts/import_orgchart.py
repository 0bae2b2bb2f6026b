#!/usr/bin/env python3
"""Load an org chart JSON file into the configured document store.

Run from the project root:

    python3 scripts/import_orgchart.py --file orgchart.json [--key KEY] [--dry-run] [--verbose]

The file is parsed and checked for integrity problems (duplicate ids, missing
parents, circular references) before anything is written. The stored document
is replaced as a whole.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from pydantic import ValidationError  # noqa: E402

from orgchart.core.config import Settings  # noqa: E402
from orgchart.models.orgchart import OrgChartDocument  # noqa: E402
from orgchart.services.document_store import DocumentStore, build_document_store  # noqa: E402
from orgchart.services.hierarchy_validator import validate_document  # noqa: E402

logger = logging.getLogger(__name__)


def load_document(path: Path) -> OrgChartDocument:
    return OrgChartDocument.model_validate_json(path.read_bytes())


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import an org chart JSON document into the configured document store",
    )
    parser.add_argument(
        "--file",
        required=True,
        type=Path,
        help="Path to the org chart JSON file",
    )
    parser.add_argument(
        "--key",
        default=None,
        help="Document key to write (default: ORGCHART_DOCUMENT_KEY)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and validate the file without writing it",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser.parse_args(argv)


async def import_document(
    args: argparse.Namespace,
    settings: Settings | None = None,
    store: DocumentStore | None = None,
) -> int:
    """Return a process exit code: 0 on success, 1 when the file is rejected."""
    settings = settings or Settings()
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")

    logger.info("Reading %s...", args.file)
    try:
        document = load_document(args.file)
    except (OSError, ValidationError) as e:
        logger.error("Could not read org chart file %s: %s", args.file, e)
        return 1

    positions = document.organization.positions
    logger.info(
        "Parsed organization '%s': %d positions, %d employees",
        document.organization.name,
        len(positions),
        sum(len(p.employees) for p in positions),
    )

    problems = validate_document(document)
    if problems:
        for problem in problems:
            logger.error("Invalid org chart: %s", problem)
        return 1

    if args.dry_run:
        logger.info("[DRY RUN] Document is valid; nothing was written.")
        return 0

    key = args.key or settings.ORGCHART_DOCUMENT_KEY
    store = store or build_document_store(settings)
    try:
        if store.read_only:
            logger.error("Configured document store %s is read-only", type(store).__name__)
            return 1
        data = document.model_dump_json(by_alias=True, indent=2).encode("utf-8")
        await store.put(key, data)
    finally:
        await store.close()

    logger.info("Imported org chart into %s (key=%s)", type(store).__name__, key)
    return 0


def main() -> None:
    args = parse_args()
    sys.exit(asyncio.run(import_document(args)))


if __name__ == "__main__":
    main()
