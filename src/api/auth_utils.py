from datetime import UTC, datetime, timedelta
from typing import Any, cast

from jose import jwt
from jose.exceptions import JWTError

ALGORITHM = "HS256"
DEFAULT_EXPIRE_MINUTES = 15


def create_access_token(
    data: dict[str, Any],
    secret_key: str,
    expires_delta: timedelta | None = None,
    now_utc: datetime | None = None,
) -> str:
    """
    Create a signed JWT.

    Args:
        data: Claims to encode in the token
        secret_key: HMAC signing key
        expires_delta: Optional custom expiration delta
        now_utc: Current UTC time (for testing/determinism). Defaults to datetime.now(UTC).
    """
    to_encode = data.copy()
    current_time = now_utc if now_utc is not None else datetime.now(UTC)

    if expires_delta:
        expire = current_time + expires_delta
    else:
        expire = current_time + timedelta(minutes=DEFAULT_EXPIRE_MINUTES)

    to_encode.update({"iat": int(current_time.timestamp()), "exp": int(expire.timestamp())})
    encoded_jwt: str = jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)
    return encoded_jwt


def decode_access_token(
    token: str,
    secret_key: str,
    now_utc: datetime | None = None,
) -> dict[str, Any] | None:
    """
    Verify signature and expiry; None for anything that does not check out.

    Expiry is compared against `now_utc` rather than the wall clock so callers
    with an injected clock get deterministic results.
    """
    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[ALGORITHM],
            options={"verify_exp": False, "verify_iat": False},
        )
    except JWTError:
        return None

    exp = payload.get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        return None

    current_time = now_utc if now_utc is not None else datetime.now(UTC)
    if current_time.timestamp() >= exp:
        return None

    return cast(dict[str, Any], payload)
