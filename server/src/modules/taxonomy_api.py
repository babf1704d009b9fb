from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from server.src.modules.cms_auth import require_cms_editor
from server.src.modules.cms_repo import CmsMongoRepo, get_cms_repo
from server.src.modules.query_helpers import ListQuery, list_query_params

categories_router = APIRouter(prefix="/api/categories", tags=["categories"])
tags_router = APIRouter(prefix="/api/tags", tags=["tags"])


class CategoryCreate(BaseModel):
    title: str
    guid: Optional[str] = None
    description: Optional[str] = ""
    parent: Optional[str] = None
    order: int = 0


class CategoryUpdate(BaseModel):
    title: Optional[str] = None
    guid: Optional[str] = None
    description: Optional[str] = None
    parent: Optional[str] = None
    order: Optional[int] = None


class TagPayload(BaseModel):
    title: str


# ---------- categories ----------

@categories_router.get("")
def list_categories(
    query: ListQuery = Depends(list_query_params(default_sort="order,title")),
    repo: CmsMongoRepo = Depends(get_cms_repo),
):
    return repo.list_categories(query)


@categories_router.get("/{category_id}")
def get_category(category_id: str, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.get_category(category_id)


@categories_router.post("", status_code=201, dependencies=[Depends(require_cms_editor)])
def create_category(payload: CategoryCreate, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.create_category(**payload.model_dump())


@categories_router.patch("/{category_id}", dependencies=[Depends(require_cms_editor)])
def update_category(category_id: str, payload: CategoryUpdate, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.update_category(category_id, **payload.model_dump())


@categories_router.delete("/{category_id}", dependencies=[Depends(require_cms_editor)])
def delete_category(category_id: str, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return {"ok": True, "detached": repo.delete_category(category_id)}


# ---------- tags ----------

@tags_router.get("")
def list_tags(
    query: ListQuery = Depends(list_query_params(default_sort="title")),
    repo: CmsMongoRepo = Depends(get_cms_repo),
):
    return repo.list_tags(query)


@tags_router.get("/{tag_id}")
def get_tag(tag_id: str, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.get_tag(tag_id)


@tags_router.post("", status_code=201, dependencies=[Depends(require_cms_editor)])
def create_tag(payload: TagPayload, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.create_tag(title=payload.title)


@tags_router.patch("/{tag_id}", dependencies=[Depends(require_cms_editor)])
def update_tag(tag_id: str, payload: TagPayload, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.update_tag(tag_id, title=payload.title)


@tags_router.delete("/{tag_id}", dependencies=[Depends(require_cms_editor)])
def delete_tag(tag_id: str, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return {"ok": True, "detached": repo.delete_tag(tag_id)}
