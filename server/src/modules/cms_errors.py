from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError, PyMongoError

logger = logging.getLogger(__name__)


class CmsError(HTTPException):
    """Base fault raised by the content core; the status maps straight to HTTP."""

    status = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=self.status, detail=detail or self.default_detail)


class BadRequestError(CmsError):
    status = 400
    default_detail = "Bad request"


class ConflictError(CmsError):
    status = 409
    default_detail = "Guid already exists"


class InternalError(CmsError):
    status = 500
    default_detail = "Internal server error"


@contextmanager
def store_faults(kind: type[CmsError], operation: str) -> Iterator[None]:
    """Re-raise any store failure inside the block as ``kind``.

    Faults already classified by the core pass through untouched, and so do
    duplicate-key errors, which callers turn into conflicts.
    """
    try:
        yield
    except (CmsError, DuplicateKeyError):
        raise
    except PyMongoError as exc:
        logger.exception("cms store failure during %s", operation)
        raise kind(f"Database error during {operation}.") from exc
