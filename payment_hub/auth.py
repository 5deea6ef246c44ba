from fastapi import Header, HTTPException
from jose import JWTError, jwt

from payment_hub.config import get_settings


def verify_token(authorization: str = Header(...)):
    """Require an HS256 bearer token signed with JWT_SECRET; returns its claims."""
    secret = get_settings().jwt_secret
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token or not secret:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
