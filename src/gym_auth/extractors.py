"""Token extraction from HTTP requests.

The gym API authenticates with ``Authorization: Bearer <token>`` only. Tokens
are never read from URL query parameters (visible in logs/history).
"""

from __future__ import annotations

from flask import request

from .errors import AuthHeaderMalformed, AuthHeaderMissing
from .protocols import Extractor


class BearerExtractor(Extractor):
    """Extracts the JWT from the Authorization header using the Bearer scheme.

    Security Notes:
        - Bearer tokens should only be sent over HTTPS
        - Tokens in headers are not vulnerable to CSRF (unlike cookies)
    """

    def extract(self) -> str:
        """Extract JWT from Authorization: Bearer header.

        Returns:
            Raw JWT string (without "Bearer " prefix).

        Raises:
            AuthHeaderMissing: Header absent or blank.
            AuthHeaderMalformed: Not exactly "<scheme> <token>", scheme is not
                Bearer (case-insensitive), or the token is empty.
        """
        auth_header = request.headers.get("Authorization", "").strip()

        if not auth_header:
            raise AuthHeaderMissing("Missing Authorization header")

        parts = auth_header.split(" ", 1)

        if len(parts) != 2:
            raise AuthHeaderMalformed("Invalid Authorization header format (expected 'Bearer <token>')")

        scheme, token = parts

        if scheme.lower() != "bearer":
            raise AuthHeaderMalformed("Invalid authorization scheme (expected 'Bearer')")

        token = token.strip()
        if not token or " " in token:
            raise AuthHeaderMalformed("Bearer token is empty or contains spaces")

        return token
