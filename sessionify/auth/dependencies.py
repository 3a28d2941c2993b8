import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sessionify.auth import jwt_handler

security = HTTPBearer()


def get_current_owner_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    owner_user_id = payload.get("sub")
    if not owner_user_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return str(owner_user_id)
