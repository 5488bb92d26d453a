from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from config import settings
from db.database import SessionLocal
from db.models import RateLimitAuditEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    endpoint: str
    limit: int
    window_seconds: int


def login_rule() -> RateLimitRule:
    return RateLimitRule(
        "auth.login",
        settings.RATE_LIMIT_AUTH_LOGIN_ATTEMPTS,
        settings.RATE_LIMIT_AUTH_LOGIN_WINDOW_SECONDS,
    )


def register_rule() -> RateLimitRule:
    return RateLimitRule(
        "auth.register",
        settings.RATE_LIMIT_AUTH_REGISTER_ATTEMPTS,
        settings.RATE_LIMIT_AUTH_REGISTER_WINDOW_SECONDS,
    )


def password_reset_rule() -> RateLimitRule:
    return RateLimitRule(
        "auth.forgot_password",
        settings.RATE_LIMIT_PASSWORD_RESET_ATTEMPTS,
        settings.RATE_LIMIT_PASSWORD_RESET_WINDOW_SECONDS,
    )


class SlidingWindowLimiter:
    """Per-key sliding window held in process memory.

    Keys whose window has fully elapsed are dropped on a periodic sweep.
    """

    def __init__(self, sweep_interval_seconds: int = 60) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._windows: dict[str, int] = {}
        self._lock = threading.Lock()
        self._sweep_interval = max(int(sweep_interval_seconds), 1)
        self._last_sweep = time.time()

    def hit(self, key: str, limit: int, window_seconds: int) -> int:
        """Record one attempt. Returns 0 when allowed, otherwise seconds until retry."""
        now = time.time()
        window = max(int(window_seconds), 1)
        cap = max(int(limit), 1)
        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)
            bucket = self._hits.setdefault(key, deque())
            self._windows[key] = window
            while bucket and bucket[0] <= now - window:
                bucket.popleft()
            if len(bucket) >= cap:
                return int(max(bucket[0] + window - now, 1))
            bucket.append(now)
            return 0

    def _sweep(self, now: float) -> None:
        for key in list(self._hits):
            bucket = self._hits[key]
            window = self._windows.get(key, 1)
            while bucket and bucket[0] <= now - window:
                bucket.popleft()
            if not bucket:
                del self._hits[key]
                self._windows.pop(key, None)
        self._last_sweep = now

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._windows.clear()


limiter = SlidingWindowLimiter()


def client_ip(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


def _audit_block(rule: RateLimitRule, scope_key: str, retry_after: int, ip_address: str | None) -> None:
    db = SessionLocal()
    try:
        db.add(
            RateLimitAuditEvent(
                endpoint=rule.endpoint,
                scope_key=hashlib.sha256(scope_key.encode("utf-8")).hexdigest()[:24],
                blocked=True,
                retry_after_seconds=retry_after,
                ip_address=(ip_address or "")[:128] or None,
                details_json=json.dumps({"limit": rule.limit, "window_seconds": rule.window_seconds}),
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(f"Rate limit audit write failed: {e}")
    finally:
        db.close()


def enforce_rate_limit(rule: RateLimitRule, request: Request, scope: str = "") -> None:
    """Raise 429 with Retry-After once the caller exceeds ``rule``."""
    ip_address = client_ip(request)
    scope_key = f"{ip_address}:{scope.strip().lower()}"
    retry_after = limiter.hit(f"{rule.endpoint}:{scope_key}", rule.limit, rule.window_seconds)
    if not retry_after:
        return
    logger.warning(f"Rate limit hit on {rule.endpoint} from {ip_address}")
    _audit_block(rule, scope_key, retry_after, ip_address)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many attempts. Try again later.",
        headers={"Retry-After": str(retry_after)},
    )
