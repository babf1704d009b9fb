"""One guid namespace shared by articles and pages.

Each owner claims its guid in ``cms_guids`` whose unique index is the
authoritative uniqueness check; ``guid_exists`` is only the friendly
pre-check that also covers documents written before the registry existed.
"""
from __future__ import annotations

import logging

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from server.src.modules.cms_errors import BadRequestError, ConflictError, InternalError, store_faults
from server.src.modules.cms_service import ARTICLE_OWNER, PAGE_OWNER, utc_now

logger = logging.getLogger(__name__)

OWNER_TYPES = (ARTICLE_OWNER, PAGE_OWNER)


class GuidRegistry:
    def __init__(self, guids: Collection, articles: Collection, pages: Collection):
        self.guids = guids
        self.articles = articles
        self.pages = pages

    def guid_exists(self, guid: str, exclude_owner_id: str | None = None) -> bool:
        clean = str(guid or "").strip()
        owner_query: dict = {"guid": clean}
        query: dict = {"guid": clean}
        if exclude_owner_id:
            owner_query["owner_id"] = {"$ne": exclude_owner_id}
            query["id"] = {"$ne": exclude_owner_id}
        with store_faults(BadRequestError, "guid lookup"):
            if self.guids.find_one(owner_query, {"_id": 1}) is not None:
                return True
            if self.articles.find_one(query, {"_id": 1}) is not None:
                return True
            return self.pages.find_one(query, {"_id": 1}) is not None

    def ensure_available(self, guid: str, exclude_owner_id: str | None = None) -> None:
        if self.guid_exists(guid, exclude_owner_id=exclude_owner_id):
            raise ConflictError(f"Guid '{guid}' already exists")

    def claim(self, guid: str, owner_type: str, owner_id: str) -> None:
        if owner_type not in OWNER_TYPES:
            raise ValueError(f"Unknown guid owner type: {owner_type}")
        with store_faults(InternalError, "guid claim"):
            try:
                self.guids.insert_one(
                    {
                        "guid": guid,
                        "owner_type": owner_type,
                        "owner_id": owner_id,
                        "created_at": utc_now(),
                    }
                )
            except DuplicateKeyError as exc:
                logger.info("guid claim rejected guid=%s owner=%s:%s", guid, owner_type, owner_id)
                raise ConflictError(f"Guid '{guid}' already exists") from exc

    def release(self, owner_id: str, guid: str | None = None) -> int:
        query: dict = {"owner_id": owner_id}
        if guid is not None:
            query["guid"] = guid
        with store_faults(InternalError, "guid release"):
            return int(self.guids.delete_many(query).deleted_count)

    def reserve(self, guid: str, owner_type: str, owner_id: str) -> None:
        """Pre-check and claim in one call; the claim decides ties."""
        self.ensure_available(guid, exclude_owner_id=owner_id)
        self.claim(guid, owner_type, owner_id)
