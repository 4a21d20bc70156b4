"""Tests for GET /search."""

import pytest


@pytest.mark.asyncio
async def test_query_must_have_two_characters(client):
    response = await client.get("/search", params={"q": " a "})
    assert response.status_code == 400
    assert response.json()["error"] == "Search terms must be at least 2 characters."


@pytest.mark.asyncio
async def test_two_character_query_is_accepted(client, make_user):
    await make_user("abigail")
    response = await client.get("/search", params={"q": "ab"})
    assert response.status_code == 200
    body = response.json()
    assert [u["name"] for u in body["users"]] == ["abigail"]
    assert body["query"] == "ab"
    assert body["type"] == "all"


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"type": "tags"}])
async def test_invalid_parameters(client, params):
    response = await client.get("/search", params={"q": "sun", **params})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_search_matches_names_and_captions(client, make_user, make_post):
    sunny = await make_user("Sunny")
    other = await make_user("rainy")
    older = await make_post(other, caption="Golden SUNSET", minutes=1)
    newer = await make_post(other, caption="sunrise run", minutes=2)
    await make_post(sunny, caption="clouds", minutes=3)

    body = (await client.get("/search", params={"q": "sun"})).json()

    assert [u["id"] for u in body["users"]] == [sunny.id]
    assert [p["id"] for p in body["posts"]] == [newer.id, older.id]
    assert body["posts"][0]["user"]["name"] == "rainy"


@pytest.mark.asyncio
async def test_search_type_limits_result_kinds(client, make_user, make_post):
    user = await make_user("sunny")
    await make_post(user, caption="sun")

    users_only = (await client.get("/search", params={"q": "sun", "type": "users"})).json()
    posts_only = (await client.get("/search", params={"q": "sun", "type": "posts"})).json()

    assert len(users_only["users"]) == 1 and users_only["posts"] == []
    assert posts_only["users"] == [] and len(posts_only["posts"]) == 1


@pytest.mark.asyncio
async def test_search_limit(client, make_user, make_post):
    user = await make_user("poster")
    for i in range(5):
        await make_post(user, caption=f"beach day {i}", minutes=i)

    body = (await client.get("/search", params={"q": "beach", "limit": 3})).json()
    assert len(body["posts"]) == 3


@pytest.mark.asyncio
async def test_search_posts_carry_counts_without_like_state(
    client, make_user, make_post, make_like, auth_headers
):
    user = await make_user("poster")
    post = await make_post(user, caption="beach")
    await make_like(post, user)

    body = (await client.get("/search", params={"q": "beach"}, headers=auth_headers(user))).json()

    [found] = body["posts"]
    assert found["likes_count"] == 1
    assert found["is_liked"] is False


@pytest.mark.asyncio
async def test_wildcards_match_literally(client, make_user, make_post):
    user = await make_user("poster")
    discount = await make_post(user, caption="50% off today")
    await make_post(user, caption="500 reasons")

    body = (await client.get("/search", params={"q": "0%", "type": "posts"})).json()
    assert [p["id"] for p in body["posts"]] == [discount.id]
