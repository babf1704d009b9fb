"""Keep article/page references coherent when referenced documents go away.

Mongo enforces none of these links. Every helper is idempotent: pulling an id
that is already gone is a no-op, and the usage checks only read.
"""
from __future__ import annotations

import logging
import re
from typing import Any

from pymongo.client_session import ClientSession
from pymongo.collection import Collection

from server.src.modules.cms_errors import BadRequestError, InternalError, store_faults
from server.src.modules.cms_service import utc_now

logger = logging.getLogger(__name__)


def _pull_reference(articles: Collection, field: str, ref_id: str, session: ClientSession | None = None) -> int:
    with store_faults(InternalError, f"{field} reference cleanup"):
        result = articles.update_many(
            {field: ref_id},
            {"$pull": {field: ref_id}, "$set": {"updated_at": utc_now()}},
            session=session,
        )
    if result.modified_count:
        logger.info("removed %s reference %s from %d articles", field, ref_id, result.modified_count)
    return int(result.modified_count)


def remove_category_references(articles: Collection, category_id: str, session: ClientSession | None = None) -> int:
    return _pull_reference(articles, "categories", category_id, session=session)


def remove_tag_references(articles: Collection, tag_id: str, session: ClientSession | None = None) -> int:
    return _pull_reference(articles, "tags", tag_id, session=session)


def detach_child_categories(categories: Collection, category_id: str, session: ClientSession | None = None) -> int:
    with store_faults(InternalError, "category tree cleanup"):
        result = categories.update_many(
            {"parent": category_id},
            {"$set": {"parent": None, "updated_at": utc_now()}},
            session=session,
        )
    return int(result.modified_count)


def content_mentions(collection: Collection, text: str) -> bool:
    rx = {"$regex": re.escape(text), "$options": "i"}
    return collection.find_one({"content": rx}, {"_id": 1}) is not None


def is_file_in_use(files: Collection, articles: Collection, pages: Collection, file_doc: dict[str, Any]) -> bool:
    """Whether deleting ``file_doc`` would break something.

    Folders are in use while they hold children. Leaf files are in use when an
    article points at them as cover image, or when their stored filename shows
    up (case-insensitively) in article or page content. The content check is a
    text heuristic: prose that happens to contain the filename counts as a
    use, and a link that spells the name differently does not.
    """
    file_id = str(file_doc.get("id") or "")
    with store_faults(BadRequestError, "file usage check"):
        if file_doc.get("is_folder"):
            return files.find_one({"folder_id": file_id}, {"_id": 1}) is not None
        if articles.find_one({"cover_image": file_id}, {"_id": 1}) is not None:
            return True
        filename = str(file_doc.get("filename") or "").strip()
        if not filename:
            return False
        return content_mentions(articles, filename) or content_mentions(pages, filename)


def reconcile_references(articles: Collection, categories: Collection, tags: Collection) -> dict[str, int]:
    """Pull category/tag ids that point at nothing.

    Recovers from a crash between deleting a category/tag and cleaning up
    after it. Safe to run at any time.
    """
    with store_faults(InternalError, "reference reconciliation"):
        live_categories = {str(row.get("id")) for row in categories.find({}, {"_id": 0, "id": 1})}
        live_tags = {str(row.get("id")) for row in tags.find({}, {"_id": 0, "id": 1})}
        used_categories = {str(v) for v in articles.distinct("categories")}
        used_tags = {str(v) for v in articles.distinct("tags")}
        removed = {"categories": 0, "tags": 0}
        for category_id in sorted(used_categories - live_categories):
            removed["categories"] += remove_category_references(articles, category_id)
        for tag_id in sorted(used_tags - live_tags):
            removed["tags"] += remove_tag_references(articles, tag_id)
    return removed
