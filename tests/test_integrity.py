import pytest
from pymongo.errors import DuplicateKeyError, OperationFailure

from server.src.modules.cms_errors import BadRequestError, InternalError
from server.src.modules.integrity_helpers import reconcile_references
from server.src.modules.logging_helpers import write_audit


def _upload(repo, name="photo.png", folder_id=None):
    return repo.save_files([{"filename": name, "content_type": "image/png", "data": b"png"}], folder_id=folder_id)[0]


def test_category_delete_pulls_only_that_reference(repo):
    news = repo.create_category(title="News")
    tech = repo.create_category(title="Tech")
    both = repo.create_article(title="Both", guid="both", categories=[news["id"], tech["id"]])
    only_tech = repo.create_article(title="Tech only", guid="tech-only", categories=[tech["id"]])
    untouched = repo.create_article(title="Plain", guid="plain")

    touched = repo.delete_category(news["id"])

    assert touched == {"articles": 1, "children": 0}
    assert [c["id"] for c in repo.get_article(both["id"])["categories"]] == [tech["id"]]
    assert repo.articles.find_one({"id": both["id"]})["categories"] == [tech["id"]]
    assert repo.articles.find_one({"id": only_tech["id"]})["categories"] == [tech["id"]]
    assert repo.articles.find_one({"id": untouched["id"]})["categories"] == []
    with pytest.raises(BadRequestError):
        repo.get_category(news["id"])


def test_tag_delete_pulls_reference(repo):
    article = repo.create_article(title="Tagged", guid="tagged", tags=["python", "mongo"])
    python_id = repo.tags.find_one({"guid": "python"})["id"]

    touched = repo.delete_tag(python_id)

    assert touched == {"articles": 1}
    assert [t["guid"] for t in repo.get_article(article["id"])["tags"]] == ["mongo"]
    assert repo.tags.count_documents({}) == 1


def test_deleting_parent_detaches_children(repo):
    parent = repo.create_category(title="Parent")
    child = repo.create_category(title="Child", parent=parent["id"])

    touched = repo.delete_category(parent["id"])

    assert touched["children"] == 1
    assert repo.get_category(child["id"])["parent"] is None


def test_reconcile_removes_dangling_ids(repo):
    keep = repo.create_category(title="Keep")
    repo.articles.insert_one(
        {
            "id": "orphaned",
            "guid": "orphaned",
            "title": "Orphaned",
            "categories": [keep["id"], "gone-category"],
            "tags": ["gone-tag"],
        }
    )

    removed = reconcile_references(repo.articles, repo.categories, repo.tags)

    assert removed == {"categories": 1, "tags": 1}
    row = repo.articles.find_one({"id": "orphaned"})
    assert row["categories"] == [keep["id"]]
    assert row["tags"] == []
    assert repo.reconcile() == {"categories": 0, "tags": 0}


def test_folder_usage_follows_children(repo):
    folder = repo.create_folder(title="Images")
    assert repo.file_in_use(folder["id"]) is False

    _upload(repo, folder_id=folder["id"])
    assert repo.file_in_use(folder["id"]) is True
    with pytest.raises(BadRequestError) as exc:
        repo.delete_file(folder["id"])
    assert exc.value.detail == "Folder is not empty"


def test_cover_image_is_in_use(repo):
    photo = _upload(repo)
    repo.create_article(title="Covered", guid="covered", cover_image=photo["id"])
    assert repo.file_in_use(photo["id"]) is True
    with pytest.raises(BadRequestError) as exc:
        repo.delete_file(photo["id"])
    assert exc.value.detail == "File is in use"


def test_content_mention_is_in_use(repo):
    photo = _upload(repo)
    assert repo.file_in_use(photo["id"]) is False

    repo.create_page(title="Gallery", guid="gallery", content=f'<img src="/uploads/{photo["filename"].upper()}">')
    assert repo.file_in_use(photo["id"]) is True


def test_unused_file_can_be_deleted(repo):
    photo = _upload(repo)
    assert repo.delete_file(photo["id"]) is True
    assert repo.files.count_documents({}) == 0
    assert not repo._blobs().exists(photo["id"])


def test_unknown_references_rejected(repo):
    with pytest.raises(BadRequestError):
        repo.create_article(title="Bad", guid="bad", categories=["missing"])
    folder = repo.create_folder(title="Docs")
    with pytest.raises(BadRequestError):
        repo.create_article(title="Bad", guid="bad", cover_image=folder["id"])


def test_folder_path_is_unique(repo):
    folder = repo.create_folder(title="Images")
    with pytest.raises(DuplicateKeyError):
        repo.files.insert_one({"id": "dup", "is_folder": True, "path": "images", "title": "Images"})
    assert repo.files.count_documents({"is_folder": True, "path": "images"}) == 1
    # leaf files are outside the folder path index
    _upload(repo, folder_id=folder["id"])
    _upload(repo, folder_id=folder["id"])


def test_losing_folder_upsert_returns_winner(repo, monkeypatch):
    winner = repo.create_folder(title="Images")

    def collide(*args, **kwargs):
        raise DuplicateKeyError("E11000 duplicate key error index: ux_cms_folder_path")

    monkeypatch.setattr(repo.files, "update_one", collide)
    again = repo.create_folder(title="Images")
    assert again["id"] == winner["id"]


class _FailingBlobs:
    def put(self, **kwargs):
        pass

    def delete(self, file_id):
        raise OperationFailure("gridfs unavailable")


def test_failed_blob_delete_keeps_file_document(repo):
    photo = _upload(repo)
    repo.blobs = _FailingBlobs()
    with pytest.raises(InternalError):
        repo.delete_file(photo["id"])
    assert repo.files.count_documents({"id": photo["id"]}) == 1


def test_delete_is_audited_in_repo_database(repo):
    article = repo.create_article(title="Gone", guid="gone")
    repo.delete_article(article["id"])
    entry = repo.db["cms_audit_logs"].find_one({"entity_id": article["id"]})
    assert entry["action"] == "delete"
    assert entry["entity"] == "article"
    assert entry["detail"] == {"guid": "gone"}


class _BrokenAuditDb:
    def __getitem__(self, name):
        return self

    def insert_one(self, doc):
        raise OperationFailure("audit unavailable")


def test_audit_failure_does_not_raise():
    assert write_audit("delete", "file", "f-1", db=_BrokenAuditDb()) is False


def test_delete_succeeds_when_audit_fails(repo, monkeypatch):
    from server.src.modules import cms_repo

    page = repo.create_page(title="Temp", guid="temp")
    real_write_audit = cms_repo.write_audit

    def audit_to_broken_db(*args, **kwargs):
        kwargs["db"] = _BrokenAuditDb()
        return real_write_audit(*args, **kwargs)

    monkeypatch.setattr(cms_repo, "write_audit", audit_to_broken_db)
    assert repo.delete_page(page["id"]) is True
    assert repo.pages.count_documents({}) == 0
