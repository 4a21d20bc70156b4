#!/usr/bin/env python3
"""
Seed script: creates a small dataset for trying out the API.

Creates:
  • 8 users (rows written straight to the store, standing in for the
    identity-provider sync)
  • A follow graph (each user follows 3 others)
  • 3 photo posts per user, uploaded through the API
  • Likes and comments across posts

The API must run in shared-secret mode so the script can mint session
tokens for the seeded users:
  IDENTITY_SHARED_SECRET=dev-secret uvicorn instaclone.main:app
  python scripts/seed_data.py --api-url http://localhost:8000 --secret dev-secret

All IDs are printed so you can use them in curl commands.
"""
import argparse
import asyncio
import base64
import random
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx
from jose import jwt
from sqlalchemy import select

from instaclone.database import AsyncSessionLocal, init_db
from instaclone.models import User


BASE_USERS = [
    ("user_seed_alice", "alice.shoots"),
    ("user_seed_bob", "bob_outdoors"),
    ("user_seed_carol", "carol.eats"),
    ("user_seed_dave", "dave_travels"),
    ("user_seed_eve", "eve.sketches"),
    ("user_seed_frank", "frank_film"),
    ("user_seed_grace", "grace.gardens"),
    ("user_seed_henry", "henry_hikes"),
]

SAMPLE_CAPTIONS = [
    "Golden hour never misses 🌅",
    "Sunday market haul",
    "First snow of the season",
    "Coffee and a good book",
    "Found this little alley in the old town",
    "Sunset from the ferry deck",
    "Homemade pasta, round two",
    "Trail was muddy but the view was worth it",
    "Ink sketch from the café",
    "Shot on expired film, love the colours",
    "Tomatoes finally ripe 🍅",
    None,
]

SAMPLE_COMMENTS = [
    "Stunning!",
    "Where is this?",
    "Love the colours",
    "Need that recipe",
    "Great shot 📸",
    "So jealous right now",
]

# 1x1 transparent PNG
PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


@dataclass
class ApiClient:
    base_url: str
    secret: str
    _http: httpx.Client = field(init=False)

    def __post_init__(self) -> None:
        self._http = httpx.Client(base_url=self.base_url, timeout=10.0)

    def token_for(self, subject: str) -> str:
        now = int(time.time())
        return jwt.encode({"sub": subject, "iat": now, "exp": now + 3600}, self.secret, algorithm="HS256")

    def request(self, method: str, path: str, subject: Optional[str] = None, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {self.token_for(subject)}"} if subject else {}
        resp = self._http.request(method, path, headers=headers, **kwargs)
        if resp.is_error:
            print(f"  HTTP {resp.status_code} on {method} {path}: {resp.text}")
            return {}
        return resp.json()


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            if client.request("GET", "/health").get("status") == "ok":
                print("  API is ready!\n")
                return
        except httpx.HTTPError:
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


async def upsert_users() -> dict[str, str]:
    """Insert the seed users if missing; returns external_id → users.id."""
    await init_db()
    async with AsyncSessionLocal() as session:
        existing = {
            u.external_id: u
            for u in (await session.execute(select(User))).scalars().all()
        }
        for external_id, name in BASE_USERS:
            if external_id not in existing:
                user = User(external_id=external_id, name=name)
                session.add(user)
                existing[external_id] = user
        await session.commit()
        return {ext: existing[ext].id for ext, _ in BASE_USERS}


def main(api_url: str, secret: str) -> None:
    client = ApiClient(api_url, secret)
    wait_for_api(client)

    # ── Create users ─────────────────────────────────────────────────────
    print("Creating users...")
    users = asyncio.run(upsert_users())
    for external_id, user_id in users.items():
        print(f"  ✓ {external_id} ({user_id})")
    subjects = list(users)

    # ── Create follow graph ───────────────────────────────────────────────
    print("\nCreating follow relationships...")
    follows = 0
    for subject in subjects:
        for other in random.sample([s for s in subjects if s != subject], k=3):
            if client.request("POST", "/follows", subject, json={"followingId": users[other]}):
                follows += 1
    print(f"  ✓ {follows} follows created")

    # ── Create posts ──────────────────────────────────────────────────────
    print("\nCreating posts...")
    post_ids: list[str] = []
    for subject in subjects:
        for _ in range(3):
            caption = random.choice(SAMPLE_CAPTIONS)
            result = client.request(
                "POST",
                "/posts",
                subject,
                files={"image": ("pixel.png", PIXEL_PNG, "image/png")},
                data={"caption": caption} if caption else {},
            )
            if result.get("post"):
                post_ids.append(result["post"]["id"])
    print(f"  ✓ {len(post_ids)} posts created")

    # ── Likes and comments ────────────────────────────────────────────────
    print("\nAdding likes and comments...")
    likes = comments = 0
    for post_id in post_ids:
        for subject in random.sample(subjects, k=random.randint(0, 5)):
            if client.request("POST", "/likes", subject, json={"postId": post_id}):
                likes += 1
        for subject in random.sample(subjects, k=random.randint(0, 3)):
            body = {"postId": post_id, "content": random.choice(SAMPLE_COMMENTS)}
            if client.request("POST", "/comments", subject, json=body):
                comments += 1
    print(f"  ✓ {likes} likes and {comments} comments added")

    # ── Print summary ─────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    subject = subjects[0]
    token = client.token_for(subject)
    print(f"# Browse the newest posts as '{subject}':")
    print(f"  curl -s '{api_url}/posts?limit=5' -H 'Authorization: Bearer {token}' | python3 -m json.tool\n")
    print(f"# View a profile:")
    print(f"  curl -s '{api_url}/users/{users[subject]}' | python3 -m json.tool\n")
    print(f"# Search:")
    print(f"  curl -s '{api_url}/search?q=sun' | python3 -m json.tool\n")
    print("# Check Jaeger traces: http://localhost:16686")
    print("# Check Prometheus: http://localhost:9090")
    print("# Check MinIO: http://localhost:9001 (minioadmin/minioadmin)")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the Instaclone API")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--secret", required=True, help="Shared secret the API verifies tokens with")
    args = parser.parse_args()
    main(args.api_url, args.secret)
