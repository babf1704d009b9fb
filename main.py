from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from db_mongo import get_db
from server.src.modules.articles_api import router as articles_router
from server.src.modules.cms_config import validate_cms_environment
from server.src.modules.cms_repo import ensure_cms_collections_and_indexes
from server.src.modules.files_api import router as files_router
from server.src.modules.logging_helpers import logger
from server.src.modules.pages_api import router as pages_router
from server.src.modules.taxonomy_api import categories_router, tags_router


# ---------- Lifespan (startup/shutdown) ----------
@asynccontextmanager
async def lifespan(app: FastAPI):
    report = validate_cms_environment()
    for warning in report.warnings:
        logger.warning("cms config: %s", warning)
    if report.errors:
        for error in report.errors:
            logger.error("cms config: %s", error)
        raise RuntimeError("Invalid CMS configuration: " + "; ".join(report.errors))
    ensure_cms_collections_and_indexes()
    yield

app = FastAPI(title="Content Graph API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(articles_router)
app.include_router(pages_router)
app.include_router(categories_router)
app.include_router(tags_router)
app.include_router(files_router)


@app.get("/health")
def health():
    try:
        get_db().command("ping")
        return {"status": "ok"}
    except PyMongoError:
        logger.exception("health check failed")
        return {"status": "degraded"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
