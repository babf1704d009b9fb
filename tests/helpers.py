async def create_article(client, title: str, guid: str, **extra):
    payload = {"title": title, "guid": guid, "content": extra.pop("content", "")}
    payload.update(extra)
    resp = await client.post("/api/articles", json=payload)
    resp.raise_for_status()
    return resp.json()


async def create_page(client, title: str, guid: str, content: str = ""):
    resp = await client.post("/api/pages", json={"title": title, "guid": guid, "content": content})
    resp.raise_for_status()
    return resp.json()


async def create_category(client, title: str, **extra):
    payload = {"title": title}
    payload.update(extra)
    resp = await client.post("/api/categories", json=payload)
    resp.raise_for_status()
    return resp.json()
