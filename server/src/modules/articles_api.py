from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from server.src.modules.cms_auth import client_ip, require_cms_editor
from server.src.modules.cms_repo import CmsMongoRepo, get_cms_repo
from server.src.modules.query_helpers import ListQuery, list_query_params

router = APIRouter(prefix="/api/articles", tags=["articles"])


class ArticleCreate(BaseModel):
    title: str
    guid: str
    content: str = ""
    description: Optional[str] = ""
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    cover_image: Optional[str] = None


class ArticleUpdate(BaseModel):
    title: Optional[str] = None
    guid: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None
    categories: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    cover_image: Optional[str] = None


@router.get("")
def list_articles(
    query: ListQuery = Depends(list_query_params(search_fields=("title", "content"))),
    category: Optional[str] = Query(default=None),
    tag: Optional[str] = Query(default=None),
    repo: CmsMongoRepo = Depends(get_cms_repo),
):
    return repo.list_articles(query, category=category, tag=tag)


@router.get("/guid/{guid}")
def get_article_by_guid(guid: str, request: Request, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.get_article_by_guid(guid, viewer_ip=client_ip(request))


@router.get("/guid/{guid}/liked")
def get_article_liked(guid: str, request: Request, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return {"liked": repo.article_liked_by(guid, client_ip(request))}


@router.get("/{article_id}")
def get_article(article_id: str, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.get_article(article_id)


@router.post("", status_code=201, dependencies=[Depends(require_cms_editor)])
def create_article(payload: ArticleCreate, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.create_article(**payload.model_dump())


@router.patch("/{article_id}", dependencies=[Depends(require_cms_editor)])
def update_article(article_id: str, payload: ArticleUpdate, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.update_article(article_id, **payload.model_dump())


@router.delete("/{article_id}", dependencies=[Depends(require_cms_editor)])
def delete_article(article_id: str, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return {"ok": repo.delete_article(article_id)}


@router.post("/{article_id}/like")
def like_article(article_id: str, request: Request, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return {"likes": repo.like_article(article_id, client_ip(request))}
