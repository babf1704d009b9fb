import math

import pytest
from pymongo.errors import OperationFailure

from db_mongo import get_db
from server.src.modules.cms_errors import BadRequestError
from server.src.modules.query_helpers import (
    build_list_query,
    merge_filters,
    paging_envelope,
    parse_sort,
    run_list_query,
)


def _seed(count: int):
    col = get_db()["query_items"]
    col.insert_many([{"id": f"item-{i:02d}", "title": f"Item {i:02d}", "rank": i, "kind": "odd" if i % 2 else "even"} for i in range(count)])
    return col


@pytest.mark.parametrize(
    "total,page_size,page",
    [(0, 10, 1), (1, 10, 1), (10, 10, 1), (11, 10, 1), (11, 10, 2), (25, 7, 4), (25, 7, 3)],
)
def test_envelope_math(total, page_size, page):
    envelope = paging_envelope([], total, page, page_size)
    assert envelope["totalPages"] == math.ceil(total / page_size)
    assert envelope["hasNextPage"] == (page < envelope["totalPages"])
    assert envelope["totalResults"] == total
    assert envelope["pageSize"] == page_size
    assert envelope["currentPage"] == page


def test_skip_is_derived_from_page():
    query = build_list_query(page=3, page_size=4)
    assert query.skip == 8
    assert query.as_dict()["pagination"] == {"page": 3, "pageSize": 4, "skip": 8}


def test_parse_sort():
    assert parse_sort("-created_at,title") == [("created_at", -1), ("title", 1)]
    assert parse_sort("") == []
    with pytest.raises(BadRequestError):
        parse_sort("$where")


def test_merge_filters_drops_empty_parts():
    assert merge_filters({}, None) == {}
    assert merge_filters({"a": 1}, {}) == {"a": 1}
    assert merge_filters({"a": 1}, {"b": 2}) == {"$and": [{"a": 1}, {"b": 2}]}


def test_paged_results_last_page():
    col = _seed(11)
    query = build_list_query(page=2, page_size=5, sort="rank")
    envelope = run_list_query(col, query)
    assert [row["rank"] for row in envelope["results"]] == [5, 6, 7, 8, 9]
    assert envelope["hasNextPage"] is True

    last = run_list_query(col, build_list_query(page=3, page_size=5, sort="rank"))
    assert last["currentPageSize"] == 1
    assert last["totalPages"] == 3
    assert last["hasNextPage"] is False
    assert "_id" not in last["results"][0]


def test_unpaged_returns_full_sorted_list():
    col = _seed(6)
    rows = run_list_query(col, build_list_query(paging=False, sort="-rank"))
    assert isinstance(rows, list)
    assert [row["rank"] for row in rows] == [5, 4, 3, 2, 1, 0]


def test_scope_is_anded_with_search():
    col = _seed(10)
    query = build_list_query(page=1, page_size=50, search="item 0", sort="rank")
    envelope = run_list_query(col, query, scope={"kind": "odd"})
    assert [row["rank"] for row in envelope["results"]] == [1, 3, 5, 7, 9]
    assert envelope["totalResults"] == 5


def test_search_is_escaped_and_case_insensitive():
    col = get_db()["query_items"]
    col.insert_many([{"title": "C++ tips"}, {"title": "Cxx tips"}])
    rows = run_list_query(col, build_list_query(paging=False, search="c++", sort="title"))
    assert [row["title"] for row in rows] == ["C++ tips"]


def test_projector_runs_on_results_only():
    col = _seed(3)
    seen = []

    def project(rows):
        seen.extend(rows)
        return [{"title": row["title"].upper()} for row in rows]

    envelope = run_list_query(col, build_list_query(page=1, page_size=2, sort="rank"), project=project)
    assert [row["title"] for row in envelope["results"]] == ["ITEM 00", "ITEM 01"]
    assert len(seen) == 2


class _BrokenCollection:
    name = "broken"

    def find(self, *args, **kwargs):
        raise OperationFailure("boom")


def test_store_error_surfaces_as_bad_request():
    with pytest.raises(BadRequestError) as exc:
        run_list_query(_BrokenCollection(), build_list_query())
    assert exc.value.status_code == 400
