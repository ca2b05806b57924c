from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from icebreakers.core.clock import utcnow
from icebreakers.core.config import EXPO_ACCESS_TOKEN, EXPO_PUSH_URL
from icebreakers.core.db import upsert_insert
from icebreakers.core.location_config import PUSH_CHUNK_SIZE
from icebreakers.models.push_device import PushDevice


# ---------------------------
# Helpers (validation)
# ---------------------------

def is_expo_token(token: str) -> bool:
    return token.startswith("ExponentPushToken")


# ---------------------------
# Device registrations
# ---------------------------

def register_device(
    db: Session,
    user_id: str,
    device_id: str,
    platform: str,
    push_token: str,
) -> PushDevice:
    values = {
        "push_token": push_token,
        "platform": platform,
        "enabled": True,
        "updated_at": utcnow(),
    }
    stmt = upsert_insert(db, PushDevice).values(user_id=user_id, device_id=device_id, **values)
    db.execute(
        stmt.on_conflict_do_update(
            index_elements=[PushDevice.user_id, PushDevice.device_id],
            set_=values,
        )
    )
    db.commit()

    logger.info(f"Registered push token | user={user_id} device={device_id} platform={platform}")
    return db.get(PushDevice, (user_id, device_id))


def get_push_tokens(db: Session, user_id: str) -> List[str]:
    rows = db.execute(
        select(PushDevice.push_token)
        .where(PushDevice.user_id == user_id, PushDevice.enabled.is_(True))
        .order_by(PushDevice.updated_at.desc())
    ).scalars().all()

    return [t for t in rows if isinstance(t, str) and is_expo_token(t)]


# ---------------------------
# Expo push
# ---------------------------

class ExpoPushGateway:
    """
    Sends messages to the Expo push service in chunks it accepts.
    Failures are logged per chunk and never raised.
    """

    def __init__(
        self,
        url: str = EXPO_PUSH_URL,
        access_token: Optional[str] = EXPO_ACCESS_TOKEN,
        chunk_size: int = PUSH_CHUNK_SIZE,
        timeout: float = 15,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.access_token = access_token
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def send(
        self,
        tokens: List[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[bool]:
        if not tokens:
            return []

        messages = [
            {"to": to, "sound": "default", "title": title, "body": body, "data": data or {}}
            for to in tokens
        ]

        results: List[bool] = []
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            for i in range(0, len(messages), self.chunk_size):
                chunk = messages[i:i + self.chunk_size]
                results.append(self._post_chunk(client, chunk))

        return results

    def _post_chunk(self, client: httpx.Client, chunk: List[Dict[str, Any]]) -> bool:
        try:
            resp = client.post(self.url, json=chunk, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Expo push transport error | messages={len(chunk)} error={e!r}")
            return False

        if resp.status_code >= 400:
            logger.error(
                f"Expo push failed | status={resp.status_code} body={resp.text[:500]}"
            )
            return False

        logger.debug(f"Expo push sent | messages={len(chunk)} status={resp.status_code}")
        return True


_GATEWAY: ExpoPushGateway | None = None


def get_push_gateway() -> ExpoPushGateway:
    """FastAPI dependency; overridden in tests."""
    global _GATEWAY
    if _GATEWAY is None:
        _GATEWAY = ExpoPushGateway()
    return _GATEWAY
