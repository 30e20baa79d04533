from dataclasses import dataclass

from fastapi import Header, HTTPException
from jose import JWTError, jwt

from storefront.config import get_settings


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str | None = None
    role: str = "CUSTOMER"


def get_current_user(authorization: str = Header(None)) -> CurrentUser:
    settings = get_settings()
    try:
        scheme, token = (authorization or "").split()
        if scheme.lower() != "bearer":
            raise ValueError("Unsupported authorization scheme")
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        user_id = claims["sub"]
    except (ValueError, KeyError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")

    return CurrentUser(id=user_id, email=claims.get("email"), role=claims.get("role", "CUSTOMER"))
