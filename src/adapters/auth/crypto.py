import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from src.adapters.clock import SystemClock
from src.api.auth_utils import create_access_token, decode_access_token
from src.rules.models import AdminRules

logger = logging.getLogger(__name__)

ADMIN_SUBJECT = "admin"
ARGON2_PREFIX = "$argon2"


class TimePort(Protocol):
    def now_utc(self) -> datetime: ...


def _digest(value: str) -> bytes:
    return hashlib.sha256(value.encode("utf-8")).digest()


def is_admin_password_valid(password: str | None, expected: str | None) -> bool:
    """
    Check a submitted password against the configured admin secret.

    Plain secrets are compared with hmac.compare_digest over fixed-length
    digests, so timing depends on neither the matching prefix nor the length.
    A configured Argon2 hash is verified with argon2-cffi instead.
    """
    if not expected or not password:
        return False

    if expected.startswith(ARGON2_PREFIX):
        try:
            return bool(PasswordHasher().verify(expected, password))
        except VerificationError:
            return False
        except InvalidHashError:
            logger.error("Configured admin password hash is not a valid Argon2 hash")
            return False

    return hmac.compare_digest(_digest(password), _digest(expected))


@dataclass(frozen=True)
class AdminSessionCookie:
    name: str
    value: str
    max_age: int
    expires: datetime
    http_only: bool
    secure: bool
    same_site: str
    path: str


class AdminSessionAdapter:
    """Stateless admin sessions carried in a signed, expiring JWT cookie."""

    def __init__(
        self,
        secret_key: str,
        rules: AdminRules | None = None,
        secure: bool = False,
        time_port: TimePort | None = None,
    ) -> None:
        self._secret = secret_key
        self._rules = rules or AdminRules()
        self._secure = secure
        self._time = time_port or SystemClock()

    @property
    def cookie_name(self) -> str:
        return self._rules.cookie.name

    def create_admin_session_cookie(self) -> AdminSessionCookie:
        now = self._time.now_utc()
        ttl = timedelta(minutes=self._rules.session_ttl_minutes)
        token = create_access_token(
            {"sub": ADMIN_SUBJECT},
            self._secret,
            expires_delta=ttl,
            now_utc=now,
        )
        cookie = self._rules.cookie
        return AdminSessionCookie(
            name=cookie.name,
            value=token,
            max_age=int(ttl.total_seconds()),
            expires=now + ttl,
            http_only=cookie.http_only,
            secure=self._secure,
            same_site=cookie.same_site,
            path=cookie.path,
        )

    def has_valid_admin_session_from_cookie(self, cookie_value: str | None) -> bool:
        if not isinstance(cookie_value, str) or not cookie_value:
            return False

        payload = decode_access_token(cookie_value, self._secret, now_utc=self._time.now_utc())
        if payload is None:
            return False
        return payload.get("sub") == ADMIN_SUBJECT
