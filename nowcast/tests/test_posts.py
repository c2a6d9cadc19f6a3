import pytest
from httpx import AsyncClient

@pytest.mark.asyncio
async def test_create_post(client: AsyncClient, make_user, auth_headers):
    """Test creating a post"""
    user = await make_user("postuser")

    response = await client.post(
        "/api/v1/posts/",
        json={"text": "This is a test post about #FastAPI"},
        headers=auth_headers(user)
    )

    assert response.status_code == 201
    data = response.json()
    assert data["text"] == "This is a test post about #FastAPI"
    assert data["hashtags"] == ["fastapi"]
    assert data["author"]["username"] == "postuser"
    assert data["parent_id"] is None
    assert data["likes_count"] == 0

@pytest.mark.asyncio
async def test_create_post_requires_auth(client: AsyncClient):
    response = await client.post("/api/v1/posts/", json={"text": "anonymous"})
    assert response.status_code == 401

@pytest.mark.asyncio
async def test_create_post_validation(client: AsyncClient, make_user, auth_headers):
    user = await make_user("postuser")
    headers = auth_headers(user)

    too_long = await client.post("/api/v1/posts/", json={"text": "x" * 281}, headers=headers)
    blank = await client.post("/api/v1/posts/", json={"text": "   "}, headers=headers)

    assert too_long.status_code == 422
    assert "text" in too_long.json()["errors"]
    assert blank.status_code == 422

@pytest.mark.asyncio
async def test_get_post_with_parent(client: AsyncClient, make_user, make_post):
    """Test getting a reply together with its parent"""
    user = await make_user("threaduser")
    parent = await make_post(user, "the parent")
    reply = await make_post(user, "the reply", parent_id=parent.id)

    response = await client.get(f"/api/v1/posts/{reply.id}")

    assert response.status_code == 200
    data = response.json()
    assert data["text"] == "the reply"
    assert data["parent"]["id"] == parent.id
    assert data["parent"]["author"]["username"] == "threaduser"

@pytest.mark.asyncio
async def test_get_missing_post(client: AsyncClient):
    response = await client.get("/api/v1/posts/999")
    assert response.status_code == 404

@pytest.mark.asyncio
async def test_reply_and_list_replies(client: AsyncClient, make_user, make_post, auth_headers):
    author = await make_user("author")
    replier = await make_user("replier")
    parent = await make_post(author, "question?")

    response = await client.post(
        "/api/v1/posts/",
        json={"text": "answer", "parent_id": parent.id},
        headers=auth_headers(replier)
    )
    assert response.status_code == 201

    replies = await client.get(f"/api/v1/posts/{parent.id}/replies")
    assert replies.status_code == 200
    assert [item["text"] for item in replies.json()["items"]] == ["answer"]

    detail = await client.get(f"/api/v1/posts/{parent.id}")
    assert detail.json()["replies_count"] == 1

@pytest.mark.asyncio
async def test_update_post(client: AsyncClient, make_user, make_post, auth_headers):
    """Test updating a post"""
    author = await make_user("author")
    other = await make_user("other")
    post = await make_post(author, "first draft")

    forbidden = await client.put(
        f"/api/v1/posts/{post.id}", json={"text": "hijacked"}, headers=auth_headers(other)
    )
    assert forbidden.status_code == 403

    response = await client.put(
        f"/api/v1/posts/{post.id}", json={"text": "final #draft"}, headers=auth_headers(author)
    )
    assert response.status_code == 200
    assert response.json()["text"] == "final #draft"
    assert response.json()["hashtags"] == ["draft"]

@pytest.mark.asyncio
async def test_delete_post(client: AsyncClient, make_user, make_post, auth_headers):
    """Test deleting a post"""
    author = await make_user("author")
    post = await make_post(author, "short lived")

    response = await client.delete(f"/api/v1/posts/{post.id}", headers=auth_headers(author))

    assert response.status_code == 200
    assert (await client.get(f"/api/v1/posts/{post.id}")).status_code == 404

@pytest.mark.asyncio
async def test_user_posts_listing(client: AsyncClient, make_user, make_post):
    author = await make_user("author")
    top = await make_post(author, "top level")
    await make_post(author, "reply", parent_id=top.id)

    response = await client.get("/api/v1/users/author/posts")

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == [top.id]
    assert (await client.get("/api/v1/users/nobody/posts")).status_code == 404
