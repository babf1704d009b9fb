import logging
import datetime
from typing import Any

from pymongo.database import Database
from pymongo.errors import PyMongoError

from db_mongo import get_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("cms")

CMS_AUDIT_COL = "cms_audit_logs"


def write_audit(
    action: str,
    entity: str,
    entity_id: str,
    detail: dict[str, Any] | None = None,
    username: str | None = None,
    db: Database | None = None,
) -> bool:
    """Record an audit entry; a failed write is logged, never raised."""
    target = db if db is not None else get_db()
    try:
        target[CMS_AUDIT_COL].insert_one({
            "ts": datetime.datetime.utcnow().isoformat() + "Z",
            "user": username, "action": action, "entity": entity,
            "entity_id": entity_id, "detail": detail or {},
        })
    except PyMongoError:
        logger.exception("audit write failed: %s %s id=%s", action, entity, entity_id)
        return False
    return True
