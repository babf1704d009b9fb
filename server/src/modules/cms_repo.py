from __future__ import annotations

import logging
import os
from typing import Any, Callable, Iterable
from uuid import uuid4

from pymongo import ASCENDING, DESCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from db_mongo import get_db, is_mock_uri
from server.src.modules.cms_config import get_cms_settings
from server.src.modules.cms_errors import BadRequestError, ConflictError, InternalError, store_faults
from server.src.modules.cms_service import (
    ARTICLE_OWNER,
    PAGE_OWNER,
    doc_without_mongo_id,
    normalize_id_list,
    normalize_labels,
    normalize_optional_id,
    normalize_order,
    normalize_text,
    normalize_title,
    public_engagement,
    utc_now,
)
from server.src.modules.engagement_helpers import has_liked, record_like, record_view
from server.src.modules.files_storage import FileBlobStorage
from server.src.modules.guid_registry import GuidRegistry
from server.src.modules.integrity_helpers import (
    detach_child_categories,
    is_file_in_use,
    reconcile_references,
    remove_category_references,
    remove_tag_references,
)
from server.src.modules.logging_helpers import write_audit
from server.src.modules.query_helpers import ListQuery, run_list_query
from server.src.modules.slug_helpers import slugify, validate_guid
from server.src.modules.tag_provisioner import get_or_create_tag, provision_tags

logger = logging.getLogger(__name__)


CMS_ARTICLES_COL = "cms_articles"
CMS_PAGES_COL = "cms_pages"
CMS_CATEGORIES_COL = "cms_categories"
CMS_TAGS_COL = "cms_tags"
CMS_FILES_COL = "cms_files"
CMS_GUIDS_COL = "cms_guids"

REF_FIELDS = {"_id": 0, "id": 1, "title": 1, "guid": 1}
FILE_REF_FIELDS = {"_id": 0, "id": 1, "title": 1, "filename": 1, "mimetype": 1, "size": 1, "path": 1}


def _validator_for(name: str) -> dict[str, Any]:
    dates = {"bsonType": ["date", "string"]}
    id_list = {"bsonType": "array", "items": {"bsonType": "string"}}
    if name in (CMS_ARTICLES_COL, CMS_PAGES_COL):
        props: dict[str, Any] = {
            "id": {"bsonType": "string"},
            "guid": {"bsonType": "string"},
            "title": {"bsonType": "string"},
            "content": {"bsonType": ["string", "null"]},
            "view_ips": id_list,
            "created_at": dates,
            "updated_at": dates,
        }
        if name == CMS_ARTICLES_COL:
            props.update(
                {
                    "categories": id_list,
                    "tags": id_list,
                    "cover_image": {"bsonType": ["string", "null"]},
                    "liked_ips": id_list,
                }
            )
        return {"$jsonSchema": {"bsonType": "object", "required": ["id", "guid", "title", "created_at"], "properties": props}}
    if name == CMS_CATEGORIES_COL:
        return {
            "$jsonSchema": {
                "bsonType": "object",
                "required": ["id", "guid", "title", "order", "created_at"],
                "properties": {
                    "id": {"bsonType": "string"},
                    "guid": {"bsonType": "string"},
                    "title": {"bsonType": "string"},
                    "parent": {"bsonType": ["string", "null"]},
                    "order": {"bsonType": ["int", "long"]},
                },
            }
        }
    if name == CMS_TAGS_COL:
        return {
            "$jsonSchema": {
                "bsonType": "object",
                "required": ["id", "guid", "title"],
                "properties": {
                    "id": {"bsonType": "string"},
                    "guid": {"bsonType": "string"},
                    "title": {"bsonType": "string"},
                },
            }
        }
    if name == CMS_FILES_COL:
        return {
            "$jsonSchema": {
                "bsonType": "object",
                "required": ["id", "is_folder", "created_at"],
                "properties": {
                    "id": {"bsonType": "string"},
                    "is_folder": {"bsonType": "bool"},
                    "folder_id": {"bsonType": ["string", "null"]},
                    "path": {"bsonType": ["string", "null"]},
                    "filename": {"bsonType": ["string", "null"]},
                    "mimetype": {"bsonType": ["string", "null"]},
                    "size": {"bsonType": ["int", "long", "null"]},
                },
            }
        }
    if name == CMS_GUIDS_COL:
        return {
            "$jsonSchema": {
                "bsonType": "object",
                "required": ["guid", "owner_type", "owner_id"],
                "properties": {
                    "guid": {"bsonType": "string"},
                    "owner_type": {"enum": [ARTICLE_OWNER, PAGE_OWNER]},
                    "owner_id": {"bsonType": "string"},
                },
            }
        }
    return {}


def _ensure_collection_with_validator(db, name: str) -> None:
    exists = name in db.list_collection_names()
    validator = _validator_for(name)
    if is_mock_uri():
        if not exists:
            db.create_collection(name)
        return
    try:
        if exists:
            db.command({"collMod": name, "validator": validator, "validationLevel": "moderate"})
        else:
            db.create_collection(name, validator=validator, validationLevel="moderate")
    except PyMongoError:
        logger.warning("could not apply validator to %s", name, exc_info=True)


def ensure_cms_collections_and_indexes(db=None) -> None:
    db = db if db is not None else get_db()
    for name in (CMS_ARTICLES_COL, CMS_PAGES_COL, CMS_CATEGORIES_COL, CMS_TAGS_COL, CMS_FILES_COL, CMS_GUIDS_COL):
        _ensure_collection_with_validator(db, name)

    db[CMS_ARTICLES_COL].create_index([("id", ASCENDING)], unique=True, name="ux_cms_article_id")
    db[CMS_ARTICLES_COL].create_index([("guid", ASCENDING)], unique=True, name="ux_cms_article_guid")
    db[CMS_ARTICLES_COL].create_index([("categories", ASCENDING)], name="ix_cms_article_categories")
    db[CMS_ARTICLES_COL].create_index([("tags", ASCENDING)], name="ix_cms_article_tags")
    db[CMS_ARTICLES_COL].create_index([("cover_image", ASCENDING)], name="ix_cms_article_cover")
    db[CMS_ARTICLES_COL].create_index([("created_at", DESCENDING)], name="ix_cms_article_created")

    db[CMS_PAGES_COL].create_index([("id", ASCENDING)], unique=True, name="ux_cms_page_id")
    db[CMS_PAGES_COL].create_index([("guid", ASCENDING)], unique=True, name="ux_cms_page_guid")

    db[CMS_CATEGORIES_COL].create_index([("id", ASCENDING)], unique=True, name="ux_cms_category_id")
    db[CMS_CATEGORIES_COL].create_index([("guid", ASCENDING)], unique=True, name="ux_cms_category_guid")
    db[CMS_CATEGORIES_COL].create_index([("parent", ASCENDING), ("order", ASCENDING)], name="ix_cms_category_tree")

    db[CMS_TAGS_COL].create_index([("id", ASCENDING)], unique=True, name="ux_cms_tag_id")
    db[CMS_TAGS_COL].create_index([("guid", ASCENDING)], unique=True, name="ux_cms_tag_guid")

    db[CMS_FILES_COL].create_index([("id", ASCENDING)], unique=True, name="ux_cms_file_id")
    db[CMS_FILES_COL].create_index([("folder_id", ASCENDING), ("created_at", DESCENDING)], name="ix_cms_file_folder")
    db[CMS_FILES_COL].create_index(
        [("path", ASCENDING)],
        unique=True,
        partialFilterExpression={"is_folder": True},
        name="ux_cms_folder_path",
    )

    db[CMS_GUIDS_COL].create_index([("guid", ASCENDING)], unique=True, name="ux_cms_guid")
    db[CMS_GUIDS_COL].create_index([("owner_id", ASCENDING)], name="ix_cms_guid_owner")


class CmsMongoRepo:
    def __init__(self, db=None, blobs: FileBlobStorage | None = None):
        self.db = db if db is not None else get_db()
        self.articles = self.db[CMS_ARTICLES_COL]
        self.pages = self.db[CMS_PAGES_COL]
        self.categories = self.db[CMS_CATEGORIES_COL]
        self.tags = self.db[CMS_TAGS_COL]
        self.files = self.db[CMS_FILES_COL]
        self.guids = GuidRegistry(self.db[CMS_GUIDS_COL], self.articles, self.pages)
        self.blobs = blobs
        self.cfg = get_cms_settings()

    # ---------- shared ----------

    def _run_in_transaction(self, work: Callable[[ClientSession | None], Any]) -> Any:
        if not self.cfg.use_transactions or is_mock_uri():
            return work(None)
        with self.db.client.start_session() as session:
            return session.with_transaction(work)

    def _find_by_id(self, collection: Collection, item_id: str, label: str) -> dict[str, Any]:
        with store_faults(BadRequestError, f"{label} lookup"):
            row = collection.find_one({"id": str(item_id or "").strip()}, {"_id": 0})
        if not row:
            raise BadRequestError(f"{label.capitalize()} not found")
        return doc_without_mongo_id(row)

    def _find_by_guid(self, collection: Collection, guid: str, label: str) -> dict[str, Any]:
        with store_faults(BadRequestError, f"{label} lookup"):
            row = collection.find_one({"guid": str(guid or "").strip()}, {"_id": 0})
        if not row:
            raise BadRequestError(f"{label.capitalize()} not found")
        return doc_without_mongo_id(row)

    @staticmethod
    def _ref_map(collection: Collection, ids: Iterable[str], projection: dict[str, int]) -> dict[str, dict[str, Any]]:
        clean_ids = sorted({str(i) for i in ids if i})
        if not clean_ids:
            return {}
        return {str(row.get("id")): doc_without_mongo_id(row) for row in collection.find({"id": {"$in": clean_ids}}, projection)}

    def _require_existing(self, collection: Collection, ids: list[str], label: str, query: dict[str, Any] | None = None) -> None:
        if not ids:
            return
        filt = {"id": {"$in": ids}}
        filt.update(query or {})
        with store_faults(BadRequestError, f"{label} reference check"):
            found = {str(row.get("id")) for row in collection.find(filt, {"_id": 0, "id": 1})}
        missing = [i for i in ids if i not in found]
        if missing:
            raise BadRequestError(f"Unknown {label} id(s): {', '.join(missing)}")

    def _create_sluggable(self, collection: Collection, owner_type: str, doc: dict[str, Any]) -> dict[str, Any]:
        self.guids.claim(doc["guid"], owner_type, doc["id"])
        try:
            with store_faults(InternalError, f"{owner_type} creation"):
                collection.insert_one(doc)
        except DuplicateKeyError as exc:
            self.guids.release(doc["id"])
            raise ConflictError(f"Guid '{doc['guid']}' already exists") from exc
        except Exception:
            self.guids.release(doc["id"])
            raise
        logger.info("created %s id=%s guid=%s", owner_type, doc["id"], doc["guid"])
        return doc_without_mongo_id(doc)

    def _update_sluggable(
        self,
        collection: Collection,
        owner_type: str,
        current: dict[str, Any],
        update_doc: dict[str, Any],
    ) -> dict[str, Any]:
        item_id = current["id"]
        old_guid = current.get("guid")
        new_guid = update_doc.get("guid")
        guid_changed = new_guid is not None and new_guid != old_guid
        if guid_changed:
            self.guids.reserve(new_guid, owner_type, item_id)
        update_doc["updated_at"] = utc_now()
        try:
            with store_faults(BadRequestError, f"{owner_type} update"):
                collection.update_one({"id": item_id}, {"$set": update_doc})
        except DuplicateKeyError as exc:
            if guid_changed:
                self.guids.release(item_id, guid=new_guid)
            raise ConflictError(f"Guid '{new_guid}' already exists") from exc
        except Exception:
            if guid_changed:
                self.guids.release(item_id, guid=new_guid)
            raise
        if guid_changed:
            self.guids.release(item_id, guid=old_guid)
        return self._find_by_id(collection, item_id, owner_type)

    def _delete_sluggable(self, collection: Collection, owner_type: str, item_id: str) -> bool:
        current = self._find_by_id(collection, item_id, owner_type)
        with store_faults(BadRequestError, f"{owner_type} deletion"):
            collection.delete_one({"id": current["id"]})
        self.guids.release(current["id"])
        write_audit("delete", owner_type, current["id"], {"guid": current.get("guid")}, db=self.db)
        return True

    # ---------- articles ----------

    def present_articles(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Embed categories, tags and cover file into article rows (read-only join)."""
        category_map = self._ref_map(self.categories, (c for row in rows for c in row.get("categories") or []), REF_FIELDS)
        tag_map = self._ref_map(self.tags, (t for row in rows for t in row.get("tags") or []), REF_FIELDS)
        file_map = self._ref_map(self.files, (row.get("cover_image") for row in rows), FILE_REF_FIELDS)
        out: list[dict[str, Any]] = []
        for row in rows:
            item = public_engagement(row)
            item["categories"] = [category_map[c] for c in row.get("categories") or [] if c in category_map]
            item["tags"] = [tag_map[t] for t in row.get("tags") or [] if t in tag_map]
            item["cover_image"] = file_map.get(str(row.get("cover_image") or ""))
            out.append(item)
        return out

    def list_articles(self, query: ListQuery, category: str | None = None, tag: str | None = None):
        scope: dict[str, Any] = {}
        if category:
            scope["categories"] = str(category).strip()
        if tag:
            scope["tags"] = str(tag).strip()
        return run_list_query(self.articles, query, scope=scope, project=self.present_articles)

    def get_article(self, article_id: str) -> dict[str, Any]:
        return self.present_articles([self._find_by_id(self.articles, article_id, ARTICLE_OWNER)])[0]

    def get_article_by_guid(self, guid: str, viewer_ip: str | None = None) -> dict[str, Any]:
        row = self._find_by_guid(self.articles, guid, ARTICLE_OWNER)
        if viewer_ip:
            record_view(self.articles, row["guid"], viewer_ip)
            row = self._find_by_guid(self.articles, guid, ARTICLE_OWNER)
        return self.present_articles([row])[0]

    def _article_refs(self, categories: Any, cover_image: Any) -> tuple[list[str], str | None]:
        category_ids = normalize_id_list(categories)
        self._require_existing(self.categories, category_ids, "category")
        cover_id = normalize_optional_id(cover_image)
        if cover_id:
            self._require_existing(self.files, [cover_id], "cover image", {"is_folder": False})
        return category_ids, cover_id

    def _provision(self, labels: Any) -> list[str]:
        ids = provision_tags(self.tags, normalize_labels(labels), self.cfg.slug_locale)
        return normalize_id_list(ids)

    def create_article(
        self,
        *,
        title: str,
        guid: str,
        content: str = "",
        description: str | None = None,
        categories: list[str] | None = None,
        tags: list[str] | None = None,
        cover_image: str | None = None,
    ) -> dict[str, Any]:
        clean_guid = validate_guid(guid)
        self.guids.ensure_available(clean_guid)
        category_ids, cover_id = self._article_refs(categories, cover_image)
        now = utc_now()
        doc = {
            "id": str(uuid4()),
            "guid": clean_guid,
            "title": normalize_title(title),
            "description": normalize_text(description),
            "content": normalize_text(content),
            "categories": category_ids,
            "tags": self._provision(tags),
            "cover_image": cover_id,
            "view_ips": [],
            "liked_ips": [],
            "created_at": now,
            "updated_at": now,
        }
        created = self._create_sluggable(self.articles, ARTICLE_OWNER, doc)
        return self.present_articles([created])[0]

    def update_article(
        self,
        article_id: str,
        *,
        title: str | None = None,
        guid: str | None = None,
        content: str | None = None,
        description: str | None = None,
        categories: list[str] | None = None,
        tags: list[str] | None = None,
        cover_image: str | None = None,
    ) -> dict[str, Any]:
        current = self._find_by_id(self.articles, article_id, ARTICLE_OWNER)
        update_doc: dict[str, Any] = {}
        if title is not None:
            update_doc["title"] = normalize_title(title)
        if guid is not None:
            update_doc["guid"] = validate_guid(guid)
        if content is not None:
            update_doc["content"] = normalize_text(content)
        if description is not None:
            update_doc["description"] = normalize_text(description)
        if categories is not None:
            update_doc["categories"], _ = self._article_refs(categories, None)
        if cover_image is not None:
            _, update_doc["cover_image"] = self._article_refs(None, cover_image)
        if tags is not None:
            update_doc["tags"] = self._provision(tags)
        updated = self._update_sluggable(self.articles, ARTICLE_OWNER, current, update_doc)
        return self.present_articles([updated])[0]

    def delete_article(self, article_id: str) -> bool:
        return self._delete_sluggable(self.articles, ARTICLE_OWNER, article_id)

    def like_article(self, article_id: str, ip: str) -> int:
        return record_like(self.articles, str(article_id or "").strip(), ip)

    def article_liked_by(self, guid: str, ip: str) -> bool:
        return has_liked(self.articles, str(guid or "").strip(), ip)

    # ---------- pages ----------

    def list_pages(self, query: ListQuery):
        return run_list_query(self.pages, query, project=lambda rows: [public_engagement(r) for r in rows])

    def get_page(self, page_id: str) -> dict[str, Any]:
        return public_engagement(self._find_by_id(self.pages, page_id, PAGE_OWNER))

    def get_page_by_guid(self, guid: str, viewer_ip: str | None = None) -> dict[str, Any]:
        row = self._find_by_guid(self.pages, guid, PAGE_OWNER)
        if viewer_ip:
            record_view(self.pages, row["guid"], viewer_ip)
            row = self._find_by_guid(self.pages, guid, PAGE_OWNER)
        return public_engagement(row)

    def create_page(self, *, title: str, guid: str, content: str = "", description: str | None = None) -> dict[str, Any]:
        clean_guid = validate_guid(guid)
        self.guids.ensure_available(clean_guid)
        now = utc_now()
        doc = {
            "id": str(uuid4()),
            "guid": clean_guid,
            "title": normalize_title(title),
            "description": normalize_text(description),
            "content": normalize_text(content),
            "view_ips": [],
            "created_at": now,
            "updated_at": now,
        }
        return public_engagement(self._create_sluggable(self.pages, PAGE_OWNER, doc))

    def update_page(
        self,
        page_id: str,
        *,
        title: str | None = None,
        guid: str | None = None,
        content: str | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        current = self._find_by_id(self.pages, page_id, PAGE_OWNER)
        update_doc: dict[str, Any] = {}
        if title is not None:
            update_doc["title"] = normalize_title(title)
        if guid is not None:
            update_doc["guid"] = validate_guid(guid)
        if content is not None:
            update_doc["content"] = normalize_text(content)
        if description is not None:
            update_doc["description"] = normalize_text(description)
        return public_engagement(self._update_sluggable(self.pages, PAGE_OWNER, current, update_doc))

    def delete_page(self, page_id: str) -> bool:
        return self._delete_sluggable(self.pages, PAGE_OWNER, page_id)

    # ---------- categories ----------

    def list_categories(self, query: ListQuery):
        return run_list_query(self.categories, query)

    def get_category(self, category_id: str) -> dict[str, Any]:
        return self._find_by_id(self.categories, category_id, "category")

    def _category_guid_taken(self, guid: str, exclude_id: str | None = None) -> bool:
        query: dict[str, Any] = {"guid": guid}
        if exclude_id:
            query["id"] = {"$ne": exclude_id}
        with store_faults(BadRequestError, "category guid lookup"):
            return self.categories.find_one(query, {"_id": 1}) is not None

    def create_category(
        self,
        *,
        title: str,
        guid: str | None = None,
        description: str | None = None,
        parent: str | None = None,
        order: int = 0,
    ) -> dict[str, Any]:
        clean_title = normalize_title(title)
        clean_guid = validate_guid(guid or slugify(clean_title, self.cfg.slug_locale))
        if self._category_guid_taken(clean_guid):
            raise ConflictError(f"Category guid '{clean_guid}' already exists")
        parent_id = normalize_optional_id(parent)
        if parent_id:
            self._require_existing(self.categories, [parent_id], "parent category")
        now = utc_now()
        doc = {
            "id": str(uuid4()),
            "guid": clean_guid,
            "title": clean_title,
            "description": normalize_text(description),
            "parent": parent_id,
            "order": normalize_order(order),
            "created_at": now,
            "updated_at": now,
        }
        try:
            with store_faults(InternalError, "category creation"):
                self.categories.insert_one(doc)
        except DuplicateKeyError as exc:
            raise ConflictError(f"Category guid '{clean_guid}' already exists") from exc
        return doc_without_mongo_id(doc)

    def update_category(
        self,
        category_id: str,
        *,
        title: str | None = None,
        guid: str | None = None,
        description: str | None = None,
        parent: str | None = None,
        order: int | None = None,
    ) -> dict[str, Any]:
        current = self.get_category(category_id)
        update_doc: dict[str, Any] = {"updated_at": utc_now()}
        if title is not None:
            update_doc["title"] = normalize_title(title)
        if guid is not None:
            clean_guid = validate_guid(guid)
            if self._category_guid_taken(clean_guid, exclude_id=current["id"]):
                raise ConflictError(f"Category guid '{clean_guid}' already exists")
            update_doc["guid"] = clean_guid
        if description is not None:
            update_doc["description"] = normalize_text(description)
        if parent is not None:
            parent_id = normalize_optional_id(parent)
            if parent_id == current["id"]:
                raise BadRequestError("A category cannot be its own parent")
            if parent_id:
                self._require_existing(self.categories, [parent_id], "parent category")
            update_doc["parent"] = parent_id
        if order is not None:
            update_doc["order"] = normalize_order(order)
        try:
            with store_faults(BadRequestError, "category update"):
                self.categories.update_one({"id": current["id"]}, {"$set": update_doc})
        except DuplicateKeyError as exc:
            raise ConflictError("Category guid already exists") from exc
        return self.get_category(current["id"])

    def delete_category(self, category_id: str) -> dict[str, int]:
        current = self.get_category(category_id)

        def work(session: ClientSession | None) -> dict[str, int]:
            articles = remove_category_references(self.articles, current["id"], session=session)
            children = detach_child_categories(self.categories, current["id"], session=session)
            with store_faults(InternalError, "category deletion"):
                self.categories.delete_one({"id": current["id"]}, session=session)
            return {"articles": articles, "children": children}

        touched = self._run_in_transaction(work)
        write_audit("delete", "category", current["id"], touched, db=self.db)
        return touched

    # ---------- tags ----------

    def list_tags(self, query: ListQuery):
        return run_list_query(self.tags, query)

    def get_tag(self, tag_id: str) -> dict[str, Any]:
        return self._find_by_id(self.tags, tag_id, "tag")

    def create_tag(self, *, title: str) -> dict[str, Any]:
        resolution = get_or_create_tag(self.tags, title, self.cfg.slug_locale)
        if not resolution.created:
            raise ConflictError(f"Tag guid '{resolution.tag.get('guid')}' already exists")
        return resolution.tag

    def update_tag(self, tag_id: str, *, title: str) -> dict[str, Any]:
        current = self.get_tag(tag_id)
        clean_title = normalize_title(title, field="tag")
        guid = slugify(clean_title, self.cfg.slug_locale)
        if not guid:
            raise BadRequestError(f"Tag '{clean_title}' has no usable characters")
        with store_faults(BadRequestError, "tag guid lookup"):
            clash = self.tags.find_one({"guid": guid, "id": {"$ne": current["id"]}}, {"_id": 1})
        if clash is not None:
            raise ConflictError(f"Tag guid '{guid}' already exists")
        try:
            with store_faults(BadRequestError, "tag update"):
                self.tags.update_one(
                    {"id": current["id"]},
                    {"$set": {"title": clean_title, "guid": guid, "updated_at": utc_now()}},
                )
        except DuplicateKeyError as exc:
            raise ConflictError(f"Tag guid '{guid}' already exists") from exc
        return self.get_tag(current["id"])

    def delete_tag(self, tag_id: str) -> dict[str, int]:
        current = self.get_tag(tag_id)

        def work(session: ClientSession | None) -> dict[str, int]:
            articles = remove_tag_references(self.articles, current["id"], session=session)
            with store_faults(InternalError, "tag deletion"):
                self.tags.delete_one({"id": current["id"]}, session=session)
            return {"articles": articles}

        touched = self._run_in_transaction(work)
        write_audit("delete", "tag", current["id"], touched, db=self.db)
        return touched

    def reconcile(self) -> dict[str, int]:
        return reconcile_references(self.articles, self.categories, self.tags)

    # ---------- files ----------

    def _blobs(self) -> FileBlobStorage:
        if self.blobs is None:
            self.blobs = FileBlobStorage(self.db)
        return self.blobs

    def list_files(self, query: ListQuery, folder_id: str | None = None):
        scope = {"folder_id": normalize_optional_id(folder_id)}
        return run_list_query(self.files, query, scope=scope)

    def get_file(self, file_id: str) -> dict[str, Any]:
        row = self._find_by_id(self.files, file_id, "file")
        parent = row.get("folder_id")
        row["folder"] = self._ref_map(self.files, [parent], FILE_REF_FIELDS).get(parent) if parent else None
        return row

    def _folder_path(self, folder_id: str | None) -> str:
        if not folder_id:
            return ""
        with store_faults(BadRequestError, "folder lookup"):
            folder = self.files.find_one({"id": folder_id, "is_folder": True}, {"_id": 0, "path": 1})
        if not folder:
            raise BadRequestError("Folder not found")
        return str(folder.get("path") or "")

    def create_folder(self, *, title: str, folder_id: str | None = None, path: str | None = None) -> dict[str, Any]:
        """Get-or-create a folder by path; an existing folder at ``path`` is returned as is."""
        clean_title = normalize_title(title)
        parent_id = normalize_optional_id(folder_id)
        base = self._folder_path(parent_id)
        clean_path = str(path or "").strip().strip("/") or "/".join(
            part for part in (base, slugify(clean_title, self.cfg.slug_locale)) if part
        )
        if not clean_path:
            raise BadRequestError("Folder path is required")
        now = utc_now()
        with store_faults(InternalError, "folder creation"):
            try:
                self.files.update_one(
                    {"is_folder": True, "path": clean_path},
                    {
                        "$setOnInsert": {
                            "id": str(uuid4()),
                            "is_folder": True,
                            "path": clean_path,
                            "title": clean_title,
                            "description": None,
                            "filename": None,
                            "mimetype": None,
                            "size": None,
                            "folder_id": parent_id,
                            "created_at": now,
                            "updated_at": now,
                        }
                    },
                    upsert=True,
                )
            except DuplicateKeyError:
                # a concurrent request created the same path; return its folder
                logger.info("folder path=%s created concurrently", clean_path)
            row = self.files.find_one({"is_folder": True, "path": clean_path}, {"_id": 0})
        if not row:
            raise InternalError(f"Folder '{clean_path}' vanished during creation")
        return doc_without_mongo_id(row)

    def save_files(self, uploads: list[dict[str, Any]], folder_id: str | None = None) -> list[dict[str, Any]]:
        """Store uploaded bytes and insert one leaf file document per upload.

        Each upload is ``{"filename", "content_type", "data"}``; the stored
        filename is generated so two uploads never collide.
        """
        parent_id = normalize_optional_id(folder_id)
        base = self._folder_path(parent_id)
        now = utc_now()
        docs: list[dict[str, Any]] = []
        for upload in uploads:
            original = str(upload.get("filename") or "file").strip() or "file"
            ext = os.path.splitext(original)[1].lower()
            stored = f"{uuid4().hex}{ext}"
            data = upload.get("data") or b""
            docs.append(
                {
                    "id": str(uuid4()),
                    "is_folder": False,
                    "folder_id": parent_id,
                    "path": "/".join(part for part in (base, stored) if part),
                    "title": original,
                    "description": None,
                    "filename": stored,
                    "mimetype": str(upload.get("content_type") or "application/octet-stream"),
                    "size": len(data),
                    "created_at": now,
                    "updated_at": now,
                }
            )
        if not docs:
            raise BadRequestError("No files uploaded")
        blobs = self._blobs()
        with store_faults(InternalError, "file upload"):
            for doc, upload in zip(docs, uploads):
                blobs.put(file_id=doc["id"], data=upload.get("data") or b"", filename=doc["filename"], content_type=doc["mimetype"])
            self.files.insert_many(docs)
        logger.info("stored %d files in folder=%s", len(docs), parent_id)
        return [doc_without_mongo_id(doc) for doc in docs]

    def update_file(self, file_id: str, *, title: str | None = None, description: str | None = None) -> dict[str, Any]:
        current = self._find_by_id(self.files, file_id, "file")
        update_doc: dict[str, Any] = {"updated_at": utc_now()}
        if title is not None:
            update_doc["title"] = normalize_title(title)
        if description is not None:
            update_doc["description"] = normalize_text(description) or None
        with store_faults(BadRequestError, "file update"):
            self.files.update_one({"id": current["id"]}, {"$set": update_doc})
        return self.get_file(current["id"])

    def file_in_use(self, file_id: str) -> bool:
        return is_file_in_use(self.files, self.articles, self.pages, self._find_by_id(self.files, file_id, "file"))

    def delete_file(self, file_id: str) -> bool:
        current = self._find_by_id(self.files, file_id, "file")
        if is_file_in_use(self.files, self.articles, self.pages, current):
            if current.get("is_folder"):
                raise BadRequestError("Folder is not empty")
            raise BadRequestError("File is in use")
        # blob before document: a failed blob delete leaves the file listed
        with store_faults(InternalError, "file deletion"):
            if not current.get("is_folder"):
                self._blobs().delete(current["id"])
            self.files.delete_one({"id": current["id"]})
        write_audit(
            "delete",
            "file",
            current["id"],
            {"filename": current.get("filename"), "is_folder": bool(current.get("is_folder"))},
            db=self.db,
        )
        return True


def get_cms_repo() -> CmsMongoRepo:
    return CmsMongoRepo()
