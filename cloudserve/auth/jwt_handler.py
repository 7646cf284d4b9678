import logging
from datetime import datetime, timezone, timedelta

from fastapi import HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError

from cloudserve.config import config

logger = logging.getLogger(__name__)

# Tokens are issued by the identity provider, the tokenUrl only feeds the OpenAPI docs
oauth2_scheme_access = OAuth2PasswordBearer(tokenUrl="auth/token")


def verify_jwt_token(token: str = Depends(oauth2_scheme_access)):
    """
    Verify JWT access token for correctness and expiration time.
    """
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET_KEY,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
        )

        exp = payload.get("exp")
        if exp is None:
            raise HTTPException(status_code=401, detail="Missing 'exp' field in token")

        current_time = datetime.now(tz=timezone.utc)
        token_exp_time = datetime.fromtimestamp(exp, tz=timezone.utc)
        if token_exp_time < current_time:
            raise HTTPException(status_code=401, detail="Token has expired")

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Missing 'sub' field in token")

        return {"id": user_id, "email": payload.get("email")}

    except JWTError as e:
        logger.error(f"JWT verification error: {str(e)}")
        raise HTTPException(status_code=401, detail="Token is invalid or expired")


def create_access_token(data: dict, expires_delta: timedelta = None) -> str:
    """
    Create a new JWT access token.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    to_encode.setdefault("aud", config.JWT_AUDIENCE)
    encoded_jwt = jwt.encode(to_encode, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)
    return encoded_jwt
