import base64
import binascii
import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def load_credentials_json(value: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Resolve a service-account credential setting.

    The value is probed as a file path first, then as an inline JSON document,
    then as base64-encoded JSON. Returns None for an empty value.
    """
    if not value or not value.strip():
        return None
    value = value.strip()
    if os.path.isfile(value):
        with open(value, "r", encoding="utf-8") as f:
            return json.load(f)
    if value.startswith("{"):
        return json.loads(value)
    try:
        decoded = base64.b64decode(value, validate=True)
        return json.loads(decoded.decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        raise RuntimeError("Credentials are neither a file, JSON nor base64 JSON") from e


@dataclass
class Settings:
    database_url: str
    secret_key: str
    access_token_expire_minutes: int = 60
    cors_origins: List[str] = field(default_factory=list)
    firebase_project_id: Optional[str] = None
    firebase_credentials: Optional[str] = None
    google_credentials: Optional[str] = None
    vision_api_key: Optional[str] = None
    redis_host: Optional[str] = None
    redis_port: int = 6379
    redis_username: Optional[str] = None
    redis_password: Optional[str] = None
    cache_ttl_seconds: int = 3600
    admin_emails: List[str] = field(default_factory=list)
    request_timeout_seconds: float = 30.0
    points_per_dollar: float = 1.0
    base_points_per_receipt: int = 0
    log_level: str = "INFO"

    def resolve_firebase_project_id(self) -> Optional[str]:
        if self.firebase_project_id:
            return self.firebase_project_id
        info = load_credentials_json(self.firebase_credentials)
        return info.get("project_id") if info else None


@lru_cache
def get_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL environment variable is not set")
    secret_key = os.getenv("SECRET_KEY")
    if not secret_key:
        raise RuntimeError("SECRET_KEY environment variable is not set")

    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "")),
        firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
        firebase_credentials=os.getenv("FIREBASE_CREDENTIALS") or None,
        google_credentials=os.getenv("GOOGLE_CREDENTIALS") or None,
        vision_api_key=os.getenv("GOOGLE_VISION_API_KEY") or None,
        redis_host=os.getenv("REDIS_HOST") or None,
        redis_port=int(os.getenv("REDIS_PORT", "6379")),
        redis_username=os.getenv("REDIS_USERNAME") or None,
        redis_password=os.getenv("REDIS_PASSWORD") or None,
        cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "3600")),
        admin_emails=[e.lower() for e in _split_csv(os.getenv("ADMIN_EMAILS", ""))],
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30")),
        points_per_dollar=float(os.getenv("POINTS_PER_DOLLAR", "1.0")),
        base_points_per_receipt=int(os.getenv("BASE_POINTS_PER_RECEIPT", "0")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
