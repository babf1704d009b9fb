from __future__ import annotations

from pymongo import ReturnDocument
from pymongo.collection import Collection

from server.src.modules.cms_errors import BadRequestError, store_faults


def record_view(collection: Collection, guid: str, ip: str) -> int:
    """Add ``ip`` to the viewer set of the document with ``guid``; returns the set size."""
    with store_faults(BadRequestError, "view recording"):
        doc = collection.find_one_and_update(
            {"guid": guid},
            {"$addToSet": {"view_ips": ip}},
            projection={"_id": 0, "view_ips": 1},
            return_document=ReturnDocument.AFTER,
        )
    if not doc:
        return 0
    return len(doc.get("view_ips") or [])


def record_like(collection: Collection, entity_id: str, ip: str) -> int:
    """Add ``ip`` to the liker set; the resulting set size is the like count."""
    with store_faults(BadRequestError, "like recording"):
        doc = collection.find_one_and_update(
            {"id": entity_id},
            {"$addToSet": {"liked_ips": ip}},
            projection={"_id": 0, "liked_ips": 1},
            return_document=ReturnDocument.AFTER,
        )
    if not doc:
        raise BadRequestError("Item not found")
    return len(doc.get("liked_ips") or [])


def has_liked(collection: Collection, guid: str, ip: str) -> bool:
    with store_faults(BadRequestError, "like lookup"):
        return collection.find_one({"guid": guid, "liked_ips": ip}, {"_id": 1}) is not None
