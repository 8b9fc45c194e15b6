"""
Capability token secrets.

Tokens are opaque, URL-safe random strings.  They encode nothing: the quote,
phase and expiry live server-side, keyed by the SHA-256 digest of the token,
so a token carries no account or tenant credentials and a leaked database
row cannot be replayed as a link.
"""

import hashlib
import re
import secrets

TOKEN_BYTES = 32

# token_urlsafe(32) yields 43 characters; accept a little slack either way.
_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_-]{32,128}")


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("ascii")).hexdigest()


def is_well_formed(token: object) -> bool:
    return isinstance(token, str) and _TOKEN_PATTERN.fullmatch(token) is not None
