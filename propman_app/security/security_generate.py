import hashlib
import hmac
import secrets
from datetime import datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt

from core.date_helper import utcnow
from core.settings import settings


class UserGenerate:
    """Token material for invites, public links and bearer sessions.

    Raw invite and public tokens leave this module exactly once, in the
    response that creates them; only ``hash_token`` output is stored.
    """

    def hmac_sha256(self, value: str, secret: str) -> str:
        return hmac.new(
            key=secret.encode(),
            msg=value.encode(),
            digestmod=hashlib.sha256,
        ).hexdigest()

    def new_raw_token(self, nbytes: int = 32) -> str:
        return secrets.token_urlsafe(nbytes)

    def hash_token(self, raw_token: str) -> str:
        return self.hmac_sha256(raw_token, settings.TOKEN_PEPPER)

    def issue_token(self) -> tuple[str, str]:
        raw = self.new_raw_token()
        return raw, self.hash_token(raw)

    def create_access_token(self, user_id, expires_minutes: int | None = None) -> str:
        exp: datetime = utcnow() + timedelta(
            minutes=expires_minutes or settings.ACCESS_EXPIRE_MINUTES
        )
        return jwt.encode(
            {"sub": str(user_id), "type": "access", "exp": exp},
            settings.JWT_SECRET_KEY,
            algorithm=settings.ALGORITHM,
        )

    def decode_access_token(self, token: str) -> str:
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.ALGORITHM],
            )
        except ExpiredSignatureError:
            raise ValueError("Token has expired")
        except JWTError:
            raise ValueError("Invalid token")

        if payload.get("type") != "access" or not payload.get("sub"):
            raise ValueError("Invalid token")
        return payload["sub"]


user_generate = UserGenerate()
