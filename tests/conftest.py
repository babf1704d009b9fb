import os
from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("MONGODB_URI", "mongomock://localhost")
os.environ.setdefault("CMS_MAX_UPLOAD_MB", "1")
os.environ.setdefault("CMS_SLUG_LOCALE", "tr")
os.environ.pop("CMS_ADMIN_TOKEN", None)

from db_mongo import get_db
from main import app
from server.src.modules.cms_repo import CmsMongoRepo, ensure_cms_collections_and_indexes


@pytest.fixture(autouse=True)
def clean_state():
    db = get_db()
    for name in db.list_collection_names():
        db.drop_collection(name)
    ensure_cms_collections_and_indexes(db)
    yield


@pytest.fixture
def repo():
    return CmsMongoRepo()


@asynccontextmanager
async def cms_client(ip: str | None = None):
    headers: dict[str, str] = {}
    if ip:
        headers["X-Forwarded-For"] = ip
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as client:
        yield client
