"""
Custom route decorators.

- rate_limited: fixed-window limit per client IP for one endpoint,
  configured by a requests-per-minute config key.
"""

import math
from functools import wraps

from flask import current_app, jsonify, request

from storefront.security import check_rate_limit, get_client_ip, log_security_event


def rate_limited(endpoint, limit_config_key, window_ms=60000):
    """Reject with 429 once the caller's IP exceeds the configured limit."""

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            client_ip = get_client_ip(request)
            result = check_rate_limit(
                f"{endpoint}:{client_ip}",
                current_app.config[limit_config_key],
                window_ms,
            )
            if not result.allowed:
                # Identifier and endpoint only; never the request body
                log_security_event("rate_limit_exceeded", {
                    "endpoint": endpoint,
                    "ip": client_ip,
                })
                response = jsonify({"error": "Too many requests. Please try again later."})
                response.headers["Retry-After"] = str(max(1, math.ceil(result.reset_in / 1000)))
                return response, 429
            return f(*args, **kwargs)

        return decorated

    return decorator
