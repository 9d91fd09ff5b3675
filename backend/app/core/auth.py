import logging
import threading
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Header, HTTPException
from jwt import PyJWKClient

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# JWKS client is created lazily and shared for the process lifetime.
_jwks_client: Optional[PyJWKClient] = None
_jwks_lock = threading.Lock()


def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    global _jwks_client
    if _jwks_client is not None:
        return _jwks_client
    with _jwks_lock:
        if _jwks_client is None:
            _jwks_client = PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)
        return _jwks_client


@dataclass
class CurrentUser:
    id: str
    email: Optional[str] = None
    role: Optional[str] = None


def _decode_kwargs(settings) -> tuple[dict, dict]:
    audience = (settings.supabase_jwt_audience or "").strip()
    if audience:
        return {"audience": audience}, {"verify_aud": True}
    return {}, {"verify_aud": False}


def _verify_token(token: str, settings) -> Optional[dict]:
    """Verify *token* with HS256 (shared secret) or ES256 (Supabase JWKS)."""
    kwargs, options = _decode_kwargs(settings)
    try:
        alg = jwt.get_unverified_header(token).get("alg", "")
    except jwt.DecodeError:
        return None

    if alg != "ES256" and settings.supabase_jwt_secret:
        try:
            return jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                options=options,
                **kwargs,
            )
        except jwt.InvalidTokenError:
            return None

    supabase_url = (settings.supabase_url or "").rstrip("/")
    if not supabase_url:
        return None
    try:
        client = _get_jwks_client(f"{supabase_url}/auth/v1/.well-known/jwks.json")
        signing_key = client.get_signing_key_from_jwt(token)
        return jwt.decode(token, signing_key.key, algorithms=["ES256"], options=options, **kwargs)
    except Exception as exc:
        logger.debug("ES256 verification failed: %s", exc)
        return None


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing bearer token")

    settings = get_settings()
    if not settings.supabase_jwt_secret and not settings.supabase_url:
        raise HTTPException(500, "SUPABASE_JWT_SECRET is not configured")

    payload = _verify_token(authorization.split(" ", 1)[1].strip(), settings)
    if payload is None or not payload.get("sub"):
        raise HTTPException(401, "Invalid token")

    role = (payload.get("app_metadata") or {}).get("role")
    return CurrentUser(id=str(payload["sub"]), email=payload.get("email"), role=role)
