"""Tests for the /likes endpoints."""

import pytest

from instaclone.models import Like


@pytest.mark.asyncio
async def test_like_post(client, make_user, make_post, auth_headers, count_rows):
    author = await make_user("author")
    fan = await make_user("fan")
    post = await make_post(author)

    response = await client.post("/likes", json={"postId": post.id}, headers=auth_headers(fan))

    assert response.status_code == 201
    like = response.json()["like"]
    assert like["post_id"] == post.id
    assert like["user_id"] == fan.id
    assert await count_rows(Like, post_id=post.id) == 1


@pytest.mark.asyncio
async def test_second_like_is_rejected(client, make_user, make_post, auth_headers, count_rows):
    author = await make_user("author")
    fan = await make_user("fan")
    post = await make_post(author)

    await client.post("/likes", json={"postId": post.id}, headers=auth_headers(fan))
    again = await client.post("/likes", json={"postId": post.id}, headers=auth_headers(fan))

    assert again.status_code == 400
    assert again.json()["error"] == "You have already liked this post."
    assert await count_rows(Like, post_id=post.id) == 1

    detail = (await client.get(f"/posts/{post.id}")).json()
    assert detail["post"]["likes_count"] == 1


@pytest.mark.asyncio
async def test_like_missing_post(client, make_user, auth_headers):
    user = await make_user()
    response = await client.post("/likes", json={"postId": "missing"}, headers=auth_headers(user))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_like_requires_session(client, make_user, make_post):
    post = await make_post(await make_user())
    response = await client.post("/likes", json={"postId": post.id})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unlike(client, make_user, make_post, make_like, auth_headers, count_rows):
    author = await make_user("author")
    fan = await make_user("fan")
    post = await make_post(author)
    await make_like(post, fan)
    await make_like(post, author)

    response = await client.request(
        "DELETE", "/likes", json={"postId": post.id}, headers=auth_headers(fan)
    )

    assert response.status_code == 200
    assert await count_rows(Like, user_id=fan.id) == 0
    assert await count_rows(Like, user_id=author.id) == 1


@pytest.mark.asyncio
async def test_unlike_without_like_succeeds(client, make_user, make_post, auth_headers):
    user = await make_user()
    post = await make_post(user)
    response = await client.request(
        "DELETE", "/likes", json={"postId": post.id}, headers=auth_headers(user)
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}
