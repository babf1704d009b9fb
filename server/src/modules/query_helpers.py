"""List queries shared by every collection endpoint.

A ``ListQuery`` is the store-neutral request (filter, sort, paging); the
helpers here turn it into a Mongo find/sort/skip/limit plan and shape the
result either as a plain list or as a paging envelope.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from fastapi import Query
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

from server.src.modules.cms_config import get_cms_settings
from server.src.modules.cms_errors import BadRequestError, store_faults


SORT_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")

Projector = Callable[[list[dict[str, Any]]], list[dict[str, Any]]]


@dataclass(frozen=True)
class ListQuery:
    page: int = 1
    page_size: int = 10
    search_query: dict[str, Any] = field(default_factory=dict)
    order: list[tuple[str, int]] = field(default_factory=list)
    paging: bool = True

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size

    def as_dict(self) -> dict[str, Any]:
        return {
            "pagination": {"page": self.page, "pageSize": self.page_size, "skip": self.skip},
            "searchQuery": dict(self.search_query),
            "order": list(self.order),
            "paging": self.paging,
        }


def parse_sort(raw: str | None) -> list[tuple[str, int]]:
    """``"-created_at,title"`` -> ``[("created_at", -1), ("title", 1)]``."""
    order: list[tuple[str, int]] = []
    for part in str(raw or "").split(","):
        token = part.strip()
        if not token:
            continue
        direction = DESCENDING if token.startswith("-") else ASCENDING
        name = token.lstrip("+-")
        if not SORT_FIELD_RE.match(name) or name.startswith("_"):
            raise BadRequestError(f"Invalid sort field: {name}")
        order.append((name, direction))
    return order


def search_filter(search: str | None, fields: Iterable[str]) -> dict[str, Any]:
    clean = str(search or "").strip()
    names = list(fields)
    if not clean or not names:
        return {}
    rx = {"$regex": re.escape(clean), "$options": "i"}
    if len(names) == 1:
        return {names[0]: rx}
    return {"$or": [{name: rx} for name in names]}


def merge_filters(*filters: dict[str, Any] | None) -> dict[str, Any]:
    parts = [f for f in filters if f]
    if not parts:
        return {}
    if len(parts) == 1:
        return dict(parts[0])
    return {"$and": parts}


def build_list_query(
    *,
    page: int = 1,
    page_size: int | None = None,
    paging: bool = True,
    search: str | None = None,
    search_fields: Iterable[str] = ("title",),
    sort: str | None = None,
    default_sort: str = "-created_at",
    filters: dict[str, Any] | None = None,
) -> ListQuery:
    size = page_size if page_size is not None else get_cms_settings().default_page_size
    return ListQuery(
        page=int(page),
        page_size=int(size),
        search_query=merge_filters(search_filter(search, search_fields), filters),
        order=parse_sort(sort or default_sort),
        paging=bool(paging),
    )


def list_query_params(search_fields: Iterable[str] = ("title",), default_sort: str = "-created_at"):
    """FastAPI dependency factory reading ``page``, ``pageSize``, ``paging``, ``q`` and ``sort``."""
    fields = tuple(search_fields)
    max_size = get_cms_settings().max_page_size

    def dependency(
        page: int = Query(default=1, ge=1),
        page_size: int | None = Query(default=None, ge=1, le=max_size, alias="pageSize"),
        paging: bool = Query(default=True),
        q: str | None = Query(default=None),
        sort: str | None = Query(default=None),
    ) -> ListQuery:
        return build_list_query(
            page=page,
            page_size=page_size,
            paging=paging,
            search=q,
            search_fields=fields,
            sort=sort,
            default_sort=default_sort,
        )

    return dependency


def paging_envelope(results: list[dict[str, Any]], total: int, page: int, page_size: int) -> dict[str, Any]:
    total_pages = math.ceil(total / page_size) if page_size else 0
    return {
        "results": results,
        "currentPage": page,
        "currentPageSize": len(results),
        "pageSize": page_size,
        "totalPages": total_pages,
        "totalResults": total,
        "hasNextPage": page < total_pages,
    }


def run_list_query(
    collection: Collection,
    query: ListQuery,
    scope: dict[str, Any] | None = None,
    project: Projector | None = None,
) -> dict[str, Any] | list[dict[str, Any]]:
    """Execute ``query`` against ``collection``.

    ``scope`` is AND-ed into the search filter (category, tag, folder, ...).
    ``project`` receives the fetched rows and may embed referenced documents;
    it must not write.
    """
    filt = merge_filters(query.search_query, scope)
    with store_faults(BadRequestError, f"{collection.name} listing"):
        cursor = collection.find(filt, {"_id": 0})
        if query.order:
            cursor = cursor.sort(query.order)
        if not query.paging:
            rows = list(cursor)
            return project(rows) if project else rows
        rows = list(cursor.skip(query.skip).limit(query.page_size))
        total = int(collection.count_documents(filt))
        results = project(rows) if project else rows
    return paging_envelope(results, total, query.page, query.page_size)
