import pytest
from pymongo.errors import DuplicateKeyError

from server.src.modules.cms_errors import ConflictError


def test_page_guid_blocks_article(repo):
    repo.create_page(title="About", guid="about-us")
    with pytest.raises(ConflictError) as exc:
        repo.create_article(title="About", guid="about-us")
    assert exc.value.status_code == 409
    assert repo.articles.count_documents({}) == 0


def test_article_guid_blocks_page(repo):
    repo.create_article(title="Launch", guid="launch")
    with pytest.raises(ConflictError):
        repo.create_page(title="Launch", guid="launch")
    assert repo.pages.count_documents({}) == 0


def test_guid_exists_covers_both_collections(repo):
    repo.create_page(title="Contact", guid="contact")
    repo.create_article(title="News", guid="news")
    assert repo.guids.guid_exists("contact")
    assert repo.guids.guid_exists("news")
    assert not repo.guids.guid_exists("missing")


def test_claim_is_authoritative(repo):
    repo.guids.claim("reserved", "page", "owner-1")
    with pytest.raises(ConflictError):
        repo.guids.claim("reserved", "article", "owner-2")


def test_unregistered_legacy_document_still_counts(repo):
    repo.pages.insert_one({"id": "legacy", "guid": "legacy-page", "title": "Old"})
    with pytest.raises(ConflictError):
        repo.create_article(title="New", guid="legacy-page")


def test_delete_releases_guid(repo):
    article = repo.create_article(title="Temp", guid="temp")
    repo.delete_article(article["id"])
    assert not repo.guids.guid_exists("temp")
    page = repo.create_page(title="Temp", guid="temp")
    assert page["guid"] == "temp"


def test_guid_change_moves_claim(repo):
    article = repo.create_article(title="Draft", guid="draft")
    updated = repo.update_article(article["id"], guid="final")
    assert updated["guid"] == "final"
    assert not repo.guids.guid_exists("draft")
    assert repo.guids.guid_exists("final")
    repo.create_page(title="Draft", guid="draft")


def test_guid_change_to_taken_guid_conflicts(repo):
    repo.create_page(title="Taken", guid="taken")
    article = repo.create_article(title="Mine", guid="mine")
    with pytest.raises(ConflictError):
        repo.update_article(article["id"], guid="taken")
    assert repo.get_article(article["id"])["guid"] == "mine"
    assert repo.guids.guid_exists("mine")


def test_same_guid_update_is_not_a_conflict(repo):
    page = repo.create_page(title="Keep", guid="keep")
    updated = repo.update_page(page["id"], guid="keep", title="Keep it")
    assert updated["title"] == "Keep it"


def test_insert_collision_releases_claim(repo, monkeypatch):
    def collide(*args, **kwargs):
        raise DuplicateKeyError("E11000 duplicate key error index: ux_cms_article_guid")

    monkeypatch.setattr(repo.articles, "insert_one", collide)
    with pytest.raises(ConflictError) as exc:
        repo.create_article(title="Racy", guid="racy")
    assert exc.value.status_code == 409
    assert repo.db["cms_guids"].count_documents({"guid": "racy"}) == 0
    assert repo.db["cms_guids"].count_documents({}) == 0
    assert not repo.guids.guid_exists("racy")
