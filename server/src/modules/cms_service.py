from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from server.src.modules.cms_errors import BadRequestError


ARTICLE_OWNER = "article"
PAGE_OWNER = "page"


def utc_now() -> datetime:
    return datetime.utcnow()


def doc_without_mongo_id(doc: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(doc, dict):
        return {}
    out = dict(doc)
    out.pop("_id", None)
    return out


def normalize_title(value: Any, field: str = "title") -> str:
    title = re.sub(r"\s+", " ", str(value or "")).strip()
    if not title:
        raise BadRequestError(f"{field} is required")
    return title[:200]


def normalize_text(value: Any) -> str:
    return str(value or "")


def normalize_optional_id(value: Any) -> str | None:
    raw = str(value or "").strip()
    if not raw or raw.lower() == "null":
        return None
    return raw


def normalize_id_list(value: Any) -> list[str]:
    """Distinct, non-empty ids in first-seen order."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple, set)):
        raise BadRequestError("Reference list must be an array of ids")
    out: list[str] = []
    seen: set[str] = set()
    for item in value:
        clean = str(item or "").strip()
        if not clean or clean in seen:
            continue
        seen.add(clean)
        out.append(clean)
    return out


def normalize_labels(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, (list, tuple)):
        raise BadRequestError("tags must be a list of strings")
    return [str(part) for part in value]


def normalize_order(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError) as exc:
        raise BadRequestError("order must be an integer") from exc


def public_engagement(doc: dict[str, Any]) -> dict[str, Any]:
    out = doc_without_mongo_id(doc)
    out["views"] = len(out.pop("view_ips", None) or [])
    if "liked_ips" in out:
        out["likes"] = len(out.pop("liked_ips", None) or [])
    return out
