import pytest

from tests.conftest import cms_client
from tests.helpers import create_article, create_page


@pytest.mark.asyncio
async def test_page_crud():
    async with cms_client() as client:
        page = await create_page(client, "Hakkımızda", "hakkimizda", content="<p>Biz</p>")
        assert page["views"] == 0
        assert "likes" not in page

        resp = await client.patch(f"/api/pages/{page['id']}", json={"title": "Hakkımızda 2"})
        assert resp.status_code == 200
        assert resp.json()["title"] == "Hakkımızda 2"

        resp = await client.get("/api/pages", params={"q": "biz"})
        body = resp.json()
        assert body["totalResults"] == 1
        assert body["results"][0]["id"] == page["id"]

        assert (await client.delete(f"/api/pages/{page['id']}")).json() == {"ok": True}
        assert (await client.get(f"/api/pages/{page['id']}")).status_code == 400


@pytest.mark.asyncio
async def test_page_guid_conflicts_with_article():
    async with cms_client() as client:
        await create_article(client, "Contact", "contact")
        resp = await client.post("/api/pages", json={"title": "Contact", "guid": "contact"})
        assert resp.status_code == 409


@pytest.mark.asyncio
async def test_page_views_by_address():
    async with cms_client() as client:
        await create_page(client, "Home", "home")
    for ip in ("1.1.1.1", "1.1.1.1", "2.2.2.2"):
        async with cms_client(ip=ip) as client:
            resp = await client.get("/api/pages/guid/home")
            assert resp.status_code == 200
    async with cms_client(ip="2.2.2.2") as client:
        assert (await client.get("/api/pages/guid/home")).json()["views"] == 2


@pytest.mark.asyncio
async def test_missing_page_guid_is_400():
    async with cms_client() as client:
        resp = await client.get("/api/pages/guid/nope")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Page not found"
