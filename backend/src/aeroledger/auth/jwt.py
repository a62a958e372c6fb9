"""JWT bearer tokens signed with the configured shared secret."""
from typing import Dict

import jwt

from aeroledger.config import settings


class JWTAuth:
    """Verifies access tokens carrying the caller's role; tokens are issued elsewhere."""

    def __init__(self, secret_key: str, algorithm: str):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def verify_access_token(self, token: str) -> Dict:
        """
        Verify and decode an access token.

        Raises:
            jwt.InvalidTokenError: If the token is invalid, expired or not an access token
        """
        payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        if payload.get("type") != "access":
            raise jwt.InvalidTokenError("Invalid token type")
        return payload


# Global JWT auth instance
jwt_auth = JWTAuth(settings.jwt_secret_key, settings.jwt_algorithm)
