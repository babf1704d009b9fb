from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from server.src.modules.cms_auth import client_ip, require_cms_editor
from server.src.modules.cms_repo import CmsMongoRepo, get_cms_repo
from server.src.modules.query_helpers import ListQuery, list_query_params

router = APIRouter(prefix="/api/pages", tags=["pages"])


class PageCreate(BaseModel):
    title: str
    guid: str
    content: str = ""
    description: Optional[str] = ""


class PageUpdate(BaseModel):
    title: Optional[str] = None
    guid: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None


@router.get("")
def list_pages(
    query: ListQuery = Depends(list_query_params(search_fields=("title", "content"))),
    repo: CmsMongoRepo = Depends(get_cms_repo),
):
    return repo.list_pages(query)


@router.get("/guid/{guid}")
def get_page_by_guid(guid: str, request: Request, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.get_page_by_guid(guid, viewer_ip=client_ip(request))


@router.get("/{page_id}")
def get_page(page_id: str, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.get_page(page_id)


@router.post("", status_code=201, dependencies=[Depends(require_cms_editor)])
def create_page(payload: PageCreate, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.create_page(**payload.model_dump())


@router.patch("/{page_id}", dependencies=[Depends(require_cms_editor)])
def update_page(page_id: str, payload: PageUpdate, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return repo.update_page(page_id, **payload.model_dump())


@router.delete("/{page_id}", dependencies=[Depends(require_cms_editor)])
def delete_page(page_id: str, repo: CmsMongoRepo = Depends(get_cms_repo)):
    return {"ok": repo.delete_page(page_id)}
