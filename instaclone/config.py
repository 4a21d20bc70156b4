"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Relational store (MySQL-protocol compatible) ───────────────────────
    db_host: str = "db"
    db_port: int = 4000
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "instaclone"
    # Full SQLAlchemy URL; wins over the individual db_* parts when set.
    database_url: Optional[str] = None

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # ── Object store (S3-compatible) ───────────────────────────────────────
    storage_endpoint: str = "minio:9000"
    storage_access_key: str = "minioadmin"
    storage_secret_key: str = "minioadmin"
    storage_region: str = "us-east-1"
    storage_use_ssl: bool = False
    storage_posts_bucket: str = "posts"
    storage_avatars_bucket: str = "avatars"
    # Base for public retrieval URLs, e.g. a CDN in front of the bucket.
    storage_public_url: Optional[str] = None

    @property
    def storage_endpoint_url(self) -> str:
        scheme = "https" if self.storage_use_ssl else "http"
        return f"{scheme}://{self.storage_endpoint}"

    @property
    def storage_base_url(self) -> str:
        return (self.storage_public_url or self.storage_endpoint_url).rstrip("/")

    # ── Identity provider ──────────────────────────────────────────────────
    identity_jwks_url: str = "https://clerk.example.com/.well-known/jwks.json"
    identity_issuer: Optional[str] = None
    identity_audience: Optional[str] = None
    identity_algorithms: list[str] = ["RS256"]
    # HS256 secret for local development; disables the JWKS lookup when set.
    identity_shared_secret: Optional[str] = None
    identity_session_cookie: str = "__session"
    identity_jwks_ttl: int = 3600        # seconds before the key set is refetched
    identity_jwks_min_refresh: int = 30  # seconds between refetches for unknown kids

    # ── Upload & input limits ──────────────────────────────────────────────
    max_upload_bytes: int = 5 * 1024 * 1024
    allowed_image_types: list[str] = ["image/jpeg", "image/png", "image/webp"]
    max_caption_length: int = 2200
    max_name_length: int = 30

    # ── Paging ─────────────────────────────────────────────────────────────
    posts_page_size: int = 10
    search_default_limit: int = 20
    search_max_limit: int = 100
    search_min_query_length: int = 2
    preview_comments_limit: int = 2

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    tracing_enabled: bool = True
    service_name: str = "instaclone-api"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
