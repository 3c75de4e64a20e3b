from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from servicelog.core.config import settings
from servicelog.core.security import decode_jwt

# Tokens are issued by the portal's auth service; this app only verifies them.
bearer = HTTPBearer(auto_error=False)

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> dict:
    if not creds:
        raise HTTPException(status_code=401, detail="Missing authorization token")
    try:
        claims = decode_jwt(creds.credentials, settings.JWT_SECRET)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not str(claims.get("sub") or "").strip():
        raise HTTPException(status_code=401, detail="Invalid token")
    return claims

def require_role(*roles: str):
    def _inner(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return _inner

def actor_label(user: dict) -> str:
    return str(user.get("email") or "").strip() or "system"
