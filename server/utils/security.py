# JWT handling for the RPC surface
# Tokens carry the caller's uid and admin flag

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt


class JWTManager:
    """
    Issue and verify HS256 access tokens
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256",
                 access_token_expire_minutes: int = 1440):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def from_config(cls, auth_config: Dict[str, Any]) -> "JWTManager":
        return cls(
            secret_key=auth_config["jwt_secret_key"],
            algorithm=auth_config.get("jwt_algorithm", "HS256"),
            access_token_expire_minutes=auth_config.get("access_token_expire_minutes", 1440),
        )

    def create_access_token(self, data: Dict[str, Any]) -> str:
        """
        Create an access token

        Args:
            data: claims to encode, normally uid and is_admin

        Returns:
            Encoded JWT
        """
        to_encode = data.copy()

        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iat": now,
        })

        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Decode a token

        Returns:
            The claims, or None when the token is expired or invalid
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.PyJWTError:
            return None

    def refresh_token(self, token: str) -> Optional[str]:
        payload = self.verify_token(token)
        if not payload:
            return None

        payload.pop('exp', None)
        payload.pop('iat', None)

        return self.create_access_token(payload)
