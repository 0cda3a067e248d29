import hashlib
import os
import secrets

API_KEY_PEPPER = os.getenv("API_KEY_PEPPER", "")


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(f"{API_KEY_PEPPER}{raw_key}".encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    return secrets.token_urlsafe(32)
