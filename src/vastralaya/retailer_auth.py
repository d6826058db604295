"""Retailer login and session tokens."""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Callable

from .config import Settings
from .errors import ForbiddenError, InvalidCredentialsError, UnauthorizedError, ValidationError
from .kv_store import KeyValueStore
from .models import RetailerPrincipal, RetailerSession, _has_expired, _to_iso
from .passwords import check_password, hash_password

logger = logging.getLogger(__name__)

RETAILER_PASSWORD_KEY = "retailer:password:hash"
SESSION_KEY_PREFIX = "session:"
MIN_PASSWORD_LENGTH = 6


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class RetailerAuth:
    """Checks the retailer credential pair and issues session tokens."""

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings,
        clock: Callable[[], datetime] = _default_clock,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock

    def _password_hash(self) -> str:
        """Stored password hash, seeded from configuration on first use."""
        stored = self.store.get(RETAILER_PASSWORD_KEY)
        if stored:
            return stored
        return self.store.update(
            RETAILER_PASSWORD_KEY,
            lambda current: current or hash_password(self.settings.retailer_initial_password),
        )

    def _session_expired(self, data: dict[str, Any], now: datetime) -> bool:
        return _has_expired(data.get("createdAt"), self.settings.session_ttl, now)

    def prune_expired_sessions(self) -> int:
        """Drop every session older than the configured lifetime."""
        now = self.clock()
        removed = self.store.delete_matching(
            SESSION_KEY_PREFIX, lambda _key, data: self._session_expired(data, now)
        )
        if removed:
            logger.info("Pruned %d expired retailer session(s)", removed)
        return removed

    def login(self, email: str, password: str) -> RetailerSession:
        """
        Exchange the retailer credentials for a session.

        Raises:
            InvalidCredentialsError: If the email or password is wrong.
        """
        if email.strip().lower() != self.settings.retailer_email.lower():
            logger.warning("Retailer login rejected for unknown email %s", email)
            raise InvalidCredentialsError()
        if not check_password(password, self._password_hash()):
            logger.warning("Retailer login rejected: wrong password")
            raise InvalidCredentialsError()

        self.prune_expired_sessions()
        now = self.clock()
        token = f"session_{int(now.timestamp() * 1000)}_{secrets.token_urlsafe(12)}"
        retailer = self.settings.retailer
        session = RetailerSession(
            token=token,
            user_id=retailer.id,
            email=retailer.email,
            user_type="retailer",
            created_at=_to_iso(now),
        )
        self.store.set(f"{SESSION_KEY_PREFIX}{token}", session.to_dict())
        logger.info("Retailer session issued")
        return session

    def verify_session(self, token: str) -> RetailerSession:
        """
        Raises:
            UnauthorizedError: If the session doesn't exist or has expired.
        """
        key = f"{SESSION_KEY_PREFIX}{token}"
        data = self.store.get(key) if token else None
        if data is None:
            raise UnauthorizedError("invalid session")
        if self._session_expired(data, self.clock()):
            self.store.delete(key)
            raise UnauthorizedError("session expired")
        return RetailerSession.from_dict(token, data)

    def resolve(self, token: str | None) -> RetailerPrincipal:
        """Resolve a session token to the retailer principal."""
        if not token:
            raise UnauthorizedError("missing session token")
        session = self.verify_session(token)
        if session.user_type != "retailer":
            raise UnauthorizedError("not a retailer session")
        return RetailerPrincipal(id=session.user_id, email=session.email)

    def change_password(self, token: str, current_password: str, new_password: str) -> None:
        """
        Replace the retailer password and revoke every other session.

        Raises:
            UnauthorizedError: If the session is invalid.
            ValidationError: If the current password is wrong or the new one too short.
        """
        self.resolve(token)
        if not check_password(current_password, self._password_hash()):
            raise ValidationError("currentPassword", "current password is incorrect")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                "newPassword", f"must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        self.store.set(RETAILER_PASSWORD_KEY, hash_password(new_password))
        current_key = f"{SESSION_KEY_PREFIX}{token}"
        revoked = self.store.delete_matching(
            SESSION_KEY_PREFIX, lambda key, _data: key != current_key
        )
        logger.info("Retailer password changed; %d other session(s) revoked", revoked)


def require_retailer(settings: Settings, retailer: RetailerPrincipal, action: str) -> None:
    """
    Raises:
        ForbiddenError: If the principal isn't this deployment's retailer.
    """
    if retailer.id != settings.retailer.id:
        raise ForbiddenError(action)
