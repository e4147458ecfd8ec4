"""Auth service — resolves Supabase access tokens into user ids.

The storefront SPA signs users in against Supabase Auth and forwards the
access token as `Authorization: Bearer <token>`. We ask the Auth server
who the token belongs to rather than verifying the JWT locally, so
revoked sessions stop working immediately.
"""

import logging

import requests
from flask import current_app

from storefront.security import is_valid_uuid

logger = logging.getLogger(__name__)

AUTH_TIMEOUT_SECONDS = 10


def extract_bearer_token(auth_header):
    """Return the token from an `Authorization: Bearer ...` header, or None."""
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_user_id_from_token(token):
    """Look up the Supabase user owning an access token.

    Returns the user's UUID string, or None when the token is invalid,
    expired, or Supabase can't be reached (callers treat that as anonymous).
    """
    supabase_url = current_app.config.get("SUPABASE_URL")
    if not supabase_url or not token:
        return None

    try:
        resp = requests.get(
            f"{supabase_url.rstrip('/')}/auth/v1/user",
            headers={
                "apikey": current_app.config.get("SUPABASE_ANON_KEY") or "",
                "Authorization": f"Bearer {token}",
            },
            timeout=AUTH_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.warning(f"Supabase auth lookup failed: {e}")
        return None

    if resp.status_code != 200:
        logger.info(f"Supabase rejected access token (status {resp.status_code})")
        return None

    try:
        data = resp.json()
    except ValueError:
        logger.warning("Supabase auth returned a non-JSON body")
        return None

    user_id = data.get("id") if isinstance(data, dict) else None
    return user_id if is_valid_uuid(user_id) else None
