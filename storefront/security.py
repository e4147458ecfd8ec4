"""Shared security primitives for the checkout and webhook endpoints.

- Fixed-window rate limiting (limits library, same engine as Flask-Limiter)
- Input sanitization and validation
- HMAC-SHA256 webhook signatures
- Structured security event logging
"""

import hashlib
import hmac
import json
import logging
import math
import re
import time
from collections import namedtuple
from datetime import datetime, timezone

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

# Reserved user id for checkouts started without a logged-in user.
ANONYMOUS_USER_ID = "00000000-0000-0000-0000-000000000000"

MAX_PRICE = 1_000_000
MAX_QUANTITY = 100

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"on\w+=", re.IGNORECASE)

RateLimitResult = namedtuple("RateLimitResult", ["allowed", "remaining", "reset_in"])


# ──────────────────────────────────────────────
# Rate limiting
# ──────────────────────────────────────────────

_storage = MemoryStorage()
_rate_limiter = FixedWindowRateLimiter(_storage)


def init_rate_limit_storage(storage_uri):
    """Point the rate limiter at the configured storage backend.

    memory:// keeps counters in this process only. Any other URI
    supported by limits (redis://, memcached://) is shared between
    instances.
    """
    global _storage, _rate_limiter
    if storage_uri and storage_uri != "memory://":
        _storage = storage_from_string(storage_uri)
    else:
        _storage = MemoryStorage()
    _rate_limiter = FixedWindowRateLimiter(_storage)


def reset_rate_limits():
    """Drop every counter. Used by tests and the dev server."""
    _storage.reset()


def check_rate_limit(identifier, max_requests=100, window_ms=60000):
    """Count one request for identifier in a fixed window.

    Returns RateLimitResult(allowed, remaining, reset_in) where reset_in
    is in milliseconds. The window starts at the first request and the
    counter resets once it elapses.
    """
    window_seconds = max(1, math.ceil(window_ms / 1000))
    item = RateLimitItemPerSecond(max_requests, window_seconds)

    allowed = _rate_limiter.hit(item, identifier)
    stats = _rate_limiter.get_window_stats(item, identifier)
    reset_in = max(0, int((stats.reset_time - time.time()) * 1000))

    return RateLimitResult(
        allowed=allowed,
        remaining=stats.remaining if allowed else 0,
        reset_in=reset_in,
    )


def get_client_ip(request):
    """Best-effort client IP: first X-Forwarded-For hop, X-Real-IP, socket."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    return first_hop or request.headers.get("X-Real-IP") or request.remote_addr or "unknown"


# ──────────────────────────────────────────────
# Sanitization & validation
# ──────────────────────────────────────────────

def sanitize_string(value, max_length=1000):
    """Truncate and strip markup that could end up rendered somewhere.

    Never raises: anything that is not a non-empty string becomes "".
    """
    if not value or not isinstance(value, str):
        return ""

    value = value[:max_length]
    value = value.replace("<", "").replace(">", "")
    value = _JS_PROTOCOL_RE.sub("", value)
    value = _EVENT_HANDLER_RE.sub("", value)
    return value.strip()


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_valid_price(value):
    return _is_number(value) and math.isfinite(value) and 0 < value < MAX_PRICE


def is_valid_quantity(value):
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_QUANTITY


def is_valid_uuid(value):
    return isinstance(value, str) and bool(UUID_RE.match(value))


def is_valid_email(value):
    return isinstance(value, str) and len(value) <= 254 and bool(EMAIL_RE.match(value))


# ──────────────────────────────────────────────
# Webhook signatures
# ──────────────────────────────────────────────

def create_hmac_signature(payload, secret):
    """Hex-encoded HMAC-SHA256 of payload."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload, signature, secret):
    """Constant-time check of signature against the expected HMAC."""
    if not signature or not secret:
        return False

    expected = create_hmac_signature(payload, secret)
    if len(signature) != len(expected):
        return False
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))


# ──────────────────────────────────────────────
# Observability
# ──────────────────────────────────────────────

def log_security_event(event_type, details=None):
    """Emit one structured [SECURITY] line. No other side effects."""
    payload = dict(details or {})
    payload["timestamp"] = datetime.now(timezone.utc).isoformat()
    logger.warning(f"[SECURITY] {event_type} {json.dumps(payload, default=str)}")
