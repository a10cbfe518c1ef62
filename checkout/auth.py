import time

from fastapi import Header, HTTPException
from jose import JWTError, jwt

from checkout.config import settings
from checkout.schemas import TargetRef

ALGORITHM = "HS256"


def issue_session_token(session_id: str, target: TargetRef) -> str:
    now = int(time.time())
    claims = {
        "sid": session_id,
        "kind": target.kind.value,
        "tid": target.id,
        "iat": now,
        "exp": now + settings.session_ttl_seconds,
    }
    return jwt.encode(claims, settings.session_secret, algorithm=ALGORITHM)


def verify_session_token(x_checkout_session: str = Header(...)) -> dict:
    try:
        claims = jwt.decode(x_checkout_session, settings.session_secret, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired checkout session")
    if not claims.get("sid"):
        raise HTTPException(status_code=401, detail="Invalid or expired checkout session")
    return claims
