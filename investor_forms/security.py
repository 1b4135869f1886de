"""
Request hardening for the record API.

- Per-endpoint rate limits (overridable through RATELIMIT_<KIND> config keys)
- Recursive sanitization of string values in submitted form payloads
- Security headers on every response
"""

import re
from typing import Any

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per day", "200 per hour"]
)


# Default limit per endpoint kind
RATE_LIMITS = {
    'validate': "120 per minute",
    'read': "120 per minute",
    'save': "60 per minute",
    'submit': "10 per minute",
}

SECURITY_HEADERS = {
    # JSON only; nothing to frame, script or embed
    'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    # Records hold personal financial information
    'Cache-Control': 'no-store',
}


def init_security(app):
    """Bind the limiter to the app and install the response headers hook."""
    limiter.init_app(app)
    app.after_request(add_security_headers)


def add_security_headers(response):
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


def configured_limit(kind: str) -> str:
    """The limit string for an endpoint kind, e.g. RATELIMIT_SUBMIT='5 per minute'."""
    return current_app.config.get(f'RATELIMIT_{kind.upper()}', RATE_LIMITS[kind])


def rate_limit(kind: str):
    """Decorator applying the limit configured for an endpoint kind."""
    if kind not in RATE_LIMITS:
        raise ValueError(f'Unknown rate limit kind: {kind}')
    return limiter.limit(lambda: configured_limit(kind))


# Input sanitization
SCRIPT_PATTERN = re.compile(r'<script[^>]*>.*?</script>', re.DOTALL | re.IGNORECASE)
HTML_TAG_PATTERN = re.compile(r'<[^>]+>')
EVENT_HANDLER_PATTERN = re.compile(r'on\w+\s*=', re.IGNORECASE)
CONTROL_CHAR_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

MAX_FIELD_LENGTH = 10000


def sanitize_string(value, max_length: int = MAX_FIELD_LENGTH) -> str:
    """
    Strip markup and control characters from a field value.

    Comparison labels such as "> 50% +" or "≤15%" are not markup and
    survive untouched.
    """
    if value is None:
        return ''
    if not isinstance(value, str):
        value = str(value)

    for pattern in (SCRIPT_PATTERN, EVENT_HANDLER_PATTERN, HTML_TAG_PATTERN, CONTROL_CHAR_PATTERN):
        value = pattern.sub('', value)

    return value[:max_length].strip()


def sanitize_payload(payload: Any) -> Any:
    """
    Recursively sanitize all string values in a payload.

    Numbers, booleans and None pass through unchanged; the input is not
    modified.
    """
    if isinstance(payload, dict):
        return {key: sanitize_payload(value) for key, value in payload.items()}
    if isinstance(payload, list):
        return [sanitize_payload(item) for item in payload]
    if isinstance(payload, str):
        return sanitize_string(payload)
    return payload
