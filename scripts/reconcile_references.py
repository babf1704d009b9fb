#!/usr/bin/env python
"""Pull dangling category/tag ids out of articles.

Run after an interrupted category/tag deletion, or periodically:
`python scripts/reconcile_references.py`.
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from server.src.modules.cms_repo import CmsMongoRepo, ensure_cms_collections_and_indexes  # noqa: E402
from server.src.modules.logging_helpers import logger  # noqa: E402


def run() -> dict[str, int]:
    ensure_cms_collections_and_indexes()
    removed = CmsMongoRepo().reconcile()
    logger.info("reconciled references: categories=%d tags=%d", removed["categories"], removed["tags"])
    return removed


if __name__ == "__main__":
    result = run()
    print(f"categories: removed {result['categories']} dangling references")
    print(f"tags: removed {result['tags']} dangling references")
