import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from security.security_generate import user_generate

from .errors import Unauthorized

bearer_scheme = HTTPBearer(auto_error=False)


async def jwt_protect(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> uuid.UUID:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Not authorized, no token")
    try:
        return uuid.UUID(user_generate.decode_access_token(credentials.credentials))
    except ValueError as e:
        raise Unauthorized(f"Not authorized, {str(e).lower()}")
