"""Resolve tag labels to tag ids, creating missing tags on the way.

Tags are keyed by guid (the slug of the title), so ``"Teknoloji"`` and
``"teknoloji"`` land on the same record. Creation is an upsert against the
unique ``guid`` index rather than a find-then-insert, which keeps two
concurrent article saves from minting the same tag twice.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable
from uuid import uuid4

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from server.src.modules.cms_errors import BadRequestError, InternalError, store_faults
from server.src.modules.cms_service import doc_without_mongo_id, normalize_title, utc_now
from server.src.modules.slug_helpers import slugify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagResolution:
    tag: dict[str, Any]
    created: bool

    @property
    def tag_id(self) -> str:
        return str(self.tag.get("id") or "")


def get_or_create_tag(tags: Collection, label: str, locale: str = "tr") -> TagResolution:
    title = normalize_title(label, field="tag")
    guid = slugify(title, locale)
    if not guid:
        raise BadRequestError(f"Tag '{title}' has no usable characters")
    now = utc_now()
    with store_faults(InternalError, "tag provisioning"):
        try:
            result = tags.update_one(
                {"guid": guid},
                {
                    "$setOnInsert": {
                        "id": str(uuid4()),
                        "title": title,
                        "guid": guid,
                        "created_at": now,
                        "updated_at": now,
                    }
                },
                upsert=True,
            )
            created = result.upserted_id is not None
        except DuplicateKeyError:
            # lost the race to a concurrent upsert; its document is the answer
            created = False
        row = tags.find_one({"guid": guid}, {"_id": 0})
    if not row:
        raise InternalError(f"Tag '{guid}' vanished during provisioning")
    if created:
        logger.info("created tag guid=%s", guid)
    return TagResolution(tag=doc_without_mongo_id(row), created=created)


def provision_tags(tags: Collection, labels: Iterable[str], locale: str = "tr") -> list[str]:
    """One tag id per label, in input order (duplicates map independently)."""
    return [get_or_create_tag(tags, label, locale).tag_id for label in labels]
