from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from server.src.modules.cms_auth import require_cms_editor
from server.src.modules.cms_config import get_cms_settings
from server.src.modules.cms_repo import CmsMongoRepo
from server.src.modules.files_storage import FileBlobStorage
from server.src.modules.query_helpers import ListQuery, list_query_params

router = APIRouter(prefix="/api/files", tags=["files"])
_storage: FileBlobStorage | None = None


def get_storage() -> FileBlobStorage:
    global _storage
    if _storage is None:
        _storage = FileBlobStorage()
    return _storage


def get_files_repo() -> CmsMongoRepo:
    return CmsMongoRepo(blobs=get_storage())


class FolderCreate(BaseModel):
    title: str
    folder_id: Optional[str] = None
    path: Optional[str] = None


class FileUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


@router.get("")
def list_files(
    query: ListQuery = Depends(list_query_params(default_sort="-is_folder,title")),
    folder: Optional[str] = Query(default=None),
    repo: CmsMongoRepo = Depends(get_files_repo),
):
    return repo.list_files(query, folder_id=folder)


@router.get("/{file_id}")
def get_file(file_id: str, repo: CmsMongoRepo = Depends(get_files_repo)):
    return repo.get_file(file_id)


@router.get("/{file_id}/raw")
def get_file_data(file_id: str, repo: CmsMongoRepo = Depends(get_files_repo)):
    row = repo.get_file(file_id)
    if row.get("is_folder"):
        raise HTTPException(status_code=400, detail="Folders have no data")
    try:
        grid_out = get_storage().get(row["id"])
    except KeyError:
        raise HTTPException(status_code=404, detail="File data not found")
    headers = {"Cache-Control": "public, max-age=31536000, immutable"}
    return StreamingResponse(
        grid_out,
        media_type=row.get("mimetype") or "application/octet-stream",
        headers=headers,
    )


@router.get("/{file_id}/usage")
def get_file_usage(file_id: str, repo: CmsMongoRepo = Depends(get_files_repo)):
    return {"in_use": repo.file_in_use(file_id)}


@router.post("/folders", status_code=201, dependencies=[Depends(require_cms_editor)])
def create_folder(payload: FolderCreate, repo: CmsMongoRepo = Depends(get_files_repo)):
    return repo.create_folder(**payload.model_dump())


@router.post("/upload", status_code=201, dependencies=[Depends(require_cms_editor)])
async def upload_files(
    files: List[UploadFile] = File(...),
    folder_id: Optional[str] = Form(default=None),
    repo: CmsMongoRepo = Depends(get_files_repo),
):
    cfg = get_cms_settings()
    uploads = []
    for upload in files:
        data = await upload.read()
        if len(data) > cfg.max_upload_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"File too large (max {cfg.max_upload_mb} MiB)",
            )
        uploads.append(
            {
                "filename": upload.filename or "file",
                "content_type": upload.content_type or "application/octet-stream",
                "data": data,
            }
        )
    return repo.save_files(uploads, folder_id=folder_id)


@router.patch("/{file_id}", dependencies=[Depends(require_cms_editor)])
def update_file(file_id: str, payload: FileUpdate, repo: CmsMongoRepo = Depends(get_files_repo)):
    return repo.update_file(file_id, **payload.model_dump())


@router.delete("/{file_id}", dependencies=[Depends(require_cms_editor)])
def delete_file(file_id: str, repo: CmsMongoRepo = Depends(get_files_repo)):
    return {"ok": repo.delete_file(file_id)}
