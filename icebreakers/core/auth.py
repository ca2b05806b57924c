"""
Caller identity.

Every location route depends on `get_current_caller`; the user id it
returns is the only subject an operation may act on. Tokens are issued
by Supabase and verified either against the project JWKS (ES256, the
default) or the shared HS256 secret for local and test setups.
"""
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import Header, HTTPException
from jose import JWTError, jwt
from jose.utils import base64url_decode
from loguru import logger

from icebreakers.core.config import (
    AUTH_DEBUG,
    AUTH_VERIFY_MODE,
    JWKS_TTL_SECONDS,
    SUPABASE_ANON_KEY,
    SUPABASE_JWT_SECRET,
    SUPABASE_URL,
)
from icebreakers.core.errors import Unauthenticated, Unavailable


@dataclass(frozen=True)
class Caller:
    user_id: str


def _misconfigured(detail: str) -> HTTPException:
    logger.error(f"[auth] {detail}")
    return HTTPException(status_code=500, detail=detail)


class JwksCache:
    """In-memory copy of the project signing keys, refreshed every `ttl` seconds."""

    def __init__(self, ttl: int = JWKS_TTL_SECONDS):
        self.ttl = ttl
        self._keys: Optional[list] = None
        self._fetched_at = 0.0

    def _fetch(self) -> list:
        if not SUPABASE_URL or not SUPABASE_ANON_KEY:
            raise _misconfigured("SUPABASE_URL / SUPABASE_ANON_KEY not set (required for JWKS mode)")

        url = f"{SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"
        try:
            resp = requests.get(url, headers={"apikey": SUPABASE_ANON_KEY}, timeout=10)
        except requests.RequestException as e:
            logger.error(f"[auth] JWKS fetch failed | url={url} error={e!r}")
            raise Unavailable("Temporary failure, retry later.")

        try:
            body = resp.json()
        except ValueError:
            raise _misconfigured(f"JWKS returned non-JSON: HTTP {resp.status_code}")

        if resp.status_code != 200 or "keys" not in body:
            raise _misconfigured(f"JWKS fetch failed: HTTP {resp.status_code}")

        return body["keys"]

    def keys(self, refresh: bool = False) -> list:
        stale = time.time() - self._fetched_at >= self.ttl
        if refresh or stale or self._keys is None:
            self._keys = self._fetch()
            self._fetched_at = time.time()
        return self._keys

    def find(self, kid: str) -> Optional[Dict[str, Any]]:
        match = next((k for k in self.keys() if k.get("kid") == kid), None)
        if match is None:
            # signing key rotated since the last fetch
            match = next((k for k in self.keys(refresh=True) if k.get("kid") == kid), None)
        return match


_jwks = JwksCache()


def _ec_public_key(jwk: Dict[str, Any]):
    x = int.from_bytes(base64url_decode(jwk["x"].encode()), "big")
    y = int.from_bytes(base64url_decode(jwk["y"].encode()), "big")
    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256R1()).public_key()


def _decode(token: str, key: Any, algorithm: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, key, algorithms=[algorithm], options={"verify_aud": False})
    except JWTError:
        raise Unauthenticated("Invalid or expired token")


def _claims_hs256(token: str) -> Dict[str, Any]:
    if not SUPABASE_JWT_SECRET:
        raise _misconfigured("SUPABASE_JWT_SECRET not set")
    return _decode(token, SUPABASE_JWT_SECRET, "HS256")


def _claims_jwks(token: str) -> Dict[str, Any]:
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        raise Unauthenticated("Invalid token header")

    alg, kid = header.get("alg"), header.get("kid")
    if AUTH_DEBUG:
        logger.debug(f"[auth] alg={alg} kid={kid}")

    if alg != "ES256" or not kid:
        raise Unauthenticated(f"Unsupported token (alg={alg}, kid={'set' if kid else 'missing'})")

    jwk = _jwks.find(kid)
    if jwk is None:
        raise Unauthenticated("Public key not found for kid")

    return _decode(token, _ec_public_key(jwk), "ES256")


def _bearer(authorization: Optional[str]) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("User must be authenticated.")
    return token.strip()


def get_current_caller(authorization: Optional[str] = Header(default=None)) -> Caller:
    token = _bearer(authorization)

    if AUTH_VERIFY_MODE == "hs256":
        claims = _claims_hs256(token)
    elif AUTH_VERIFY_MODE == "jwks":
        claims = _claims_jwks(token)
    else:
        raise _misconfigured(f"Invalid AUTH_VERIFY_MODE: {AUTH_VERIFY_MODE}")

    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        raise Unauthenticated("Token missing sub claim")

    if AUTH_DEBUG:
        logger.debug(f"[auth] caller={sub}")

    return Caller(user_id=sub)
