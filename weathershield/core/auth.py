"""API keys bound to accounts.

Keys look like ``ws_sk_<48 hex chars>`` and only their SHA-256 digest is
kept; the raw key is handed out once, at issue time.  Every request made
with a key acts as that key's account: the policyholder, claimant or
weather-data submitter the core sees.  An account may hold several keys.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from weathershield.core.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "ws_sk_"
BOOTSTRAP_KEY_ID = "bootstrap"

bearer_scheme = HTTPBearer(
    scheme_name="API Key",
    description="Pass your API key as: `Authorization: Bearer ws_sk_...`",
)

admin_scheme = HTTPBearer(
    scheme_name="Admin Secret",
    description="Pass the admin secret as: `Authorization: Bearer <ADMIN_SECRET>`",
)


def digest(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class APIKey:
    id: str
    name: str
    account: str
    key_hash: str
    prefix: str
    created_at: datetime
    active: bool = True
    total_requests: int = 0
    requests_by_endpoint: dict[str, int] = field(default_factory=dict)
    last_request_at: datetime | None = None

    def touch(self, endpoint: str) -> None:
        self.total_requests += 1
        self.requests_by_endpoint[endpoint] = self.requests_by_endpoint.get(endpoint, 0) + 1
        self.last_request_at = _now()


class KeyRing:
    """Issued keys, indexed by id, digest and account."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: dict[str, APIKey] = {}
        self._by_digest: dict[str, str] = {}
        self._by_account: dict[str, list[str]] = {}

    def _add(self, api_key: APIKey) -> None:
        self._by_id[api_key.id] = api_key
        self._by_digest[api_key.key_hash] = api_key.id
        self._by_account.setdefault(api_key.account, []).append(api_key.id)

    def issue(self, name: str, account: str) -> tuple[APIKey, str]:
        """Create a key acting as ``account``.  Returns ``(APIKey, raw_key)``."""
        raw = KEY_PREFIX + secrets.token_hex(24)
        api_key = APIKey(
            id=secrets.token_hex(8),
            name=name,
            account=account,
            key_hash=digest(raw),
            prefix=raw[:14] + "...",
            created_at=_now(),
        )
        with self._lock:
            self._add(api_key)
        logger.info("Issued API key %s for account %s", api_key.id, account)
        return api_key, raw

    def install(self, raw_key: str, account: str, key_id: str = BOOTSTRAP_KEY_ID) -> APIKey:
        """Register a key whose raw value was chosen by the operator."""
        api_key = APIKey(
            id=key_id,
            name=key_id,
            account=account,
            key_hash=digest(raw_key),
            prefix=raw_key[:14] + "...",
            created_at=_now(),
        )
        with self._lock:
            previous = self._by_id.get(key_id)
            if previous is not None:
                self._by_digest.pop(previous.key_hash, None)
                self._by_account.get(previous.account, []).remove(key_id)
            self._add(api_key)
        return api_key

    def resolve(self, raw_key: str) -> APIKey | None:
        with self._lock:
            key_id = self._by_digest.get(digest(raw_key))
            api_key = self._by_id.get(key_id) if key_id else None
        if api_key is None or not api_key.active:
            return None
        return api_key

    def get(self, key_id: str) -> APIKey | None:
        return self._by_id.get(key_id)

    def list(self, account: str | None = None) -> list[APIKey]:
        with self._lock:
            if account is None:
                return list(self._by_id.values())
            return [self._by_id[k] for k in self._by_account.get(account, [])]

    def revoke(self, key_id: str) -> bool:
        with self._lock:
            api_key = self._by_id.get(key_id)
            if api_key is None:
                return False
            api_key.active = False
            self._by_digest.pop(api_key.key_hash, None)
        logger.info("Revoked API key %s (account %s)", key_id, api_key.account)
        return True

    def clear(self) -> None:
        with self._lock:
            self._by_id.clear()
            self._by_digest.clear()
            self._by_account.clear()


keyring = KeyRing()


# ── FastAPI dependencies ─────────────────────────────────────────────────────


async def require_api_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
) -> APIKey:
    """Resolve the bearer key to its account and count the request."""
    api_key = keyring.resolve(credentials.credentials)
    if api_key is None:
        raise HTTPException(
            status_code=401,
            detail={
                "code": "INVALID_API_KEY",
                "message": "Unknown or revoked API key. Ask the operator for one.",
            },
        )
    request.state.api_key = api_key
    api_key.touch(request.url.path)
    return api_key


async def require_admin(
    credentials: HTTPAuthorizationCredentials = Security(admin_scheme),
) -> bool:
    if not secrets.compare_digest(credentials.credentials, settings.admin_secret):
        raise HTTPException(
            status_code=403,
            detail={"code": "FORBIDDEN", "message": "Invalid admin secret."},
        )
    return True


def bootstrap() -> None:
    """Install BOOTSTRAP_API_KEY, if configured, for BOOTSTRAP_ACCOUNT."""
    if settings.bootstrap_api_key:
        api_key = keyring.install(settings.bootstrap_api_key, settings.bootstrap_account)
        logger.info(
            "Bootstrap API key loaded (prefix=%s, account=%s)", api_key.prefix, api_key.account
        )
