"""Access token utilities.

Provides:
- Token generation (cryptographically secure, 256 bits)
- Bearer token extraction from Authorization headers
"""

import secrets


ACCESS_TOKEN_BYTES = 32


def generate_access_token() -> str:
    """Generate a portal access token.

    Returns:
        URL-safe base64 token (256 bits / 32 bytes), safe to embed in links
    """
    return secrets.token_urlsafe(ACCESS_TOKEN_BYTES)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
