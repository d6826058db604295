"""Customer identity: bearer token resolution, sign-up and sign-in."""

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

import requests

from .config import Settings
from .errors import (
    IdentityProviderError,
    InvalidCredentialsError,
    UnauthorizedError,
    ValidationError,
)
from .kv_store import KeyValueStore
from .models import CustomerPrincipal, _has_expired, _to_iso, _utc_now
from .passwords import check_password, hash_password

logger = logging.getLogger(__name__)

CUSTOMER_KEY_PREFIX = "customer:"
ACCESS_TOKEN_KEY_PREFIX = "access_token:"
MIN_PASSWORD_LENGTH = 6
REQUEST_TIMEOUT = 10
DEFAULT_TOKEN_TTL = timedelta(hours=24)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class IdentityProvider(Protocol):
    """Protocol for customer identity backends."""

    def resolve(self, access_token: str) -> CustomerPrincipal:
        """Resolve a bearer token, raising UnauthorizedError if it's invalid."""
        ...

    def create_user(
        self, email: str, password: str, name: str, phone: str | None = None
    ) -> CustomerPrincipal:
        ...

    def sign_in(self, email: str, password: str) -> str:
        """Return an access token for the credentials."""
        ...


def _principal_from_user(user: dict[str, Any]) -> CustomerPrincipal:
    metadata = user.get("user_metadata") or {}
    return CustomerPrincipal(
        id=user["id"],
        email=user.get("email") or "",
        name=metadata.get("name"),
        phone=user.get("phone") or None,
    )


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    return body.get("msg") or body.get("error_description") or body.get("message") or str(body)


class SupabaseIdentityProvider:
    """Identity backed by a Supabase project's GoTrue auth API."""

    def __init__(self, url: str, service_key: str, session: requests.Session | None = None):
        self.base_url = url.rstrip("/") + "/auth/v1"
        self.service_key = service_key
        self.http = session or requests.Session()

    def _request(self, method: str, path: str, operation: str, **kwargs) -> requests.Response:
        headers = {"apikey": self.service_key, **kwargs.pop("headers", {})}
        try:
            return self.http.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=REQUEST_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            raise IdentityProviderError(operation, str(e)) from e

    def resolve(self, access_token: str) -> CustomerPrincipal:
        response = self._request(
            "GET", "/user", "resolve", headers={"Authorization": f"Bearer {access_token}"}
        )
        if response.status_code in (401, 403):
            raise UnauthorizedError("invalid access token")
        if response.status_code != 200:
            raise IdentityProviderError("resolve", _error_message(response))
        return _principal_from_user(response.json())

    def create_user(
        self, email: str, password: str, name: str, phone: str | None = None
    ) -> CustomerPrincipal:
        payload: dict[str, Any] = {
            "email": email,
            "password": password,
            "user_metadata": {"name": name, "userType": "customer"},
            # No mail server is configured, so accounts are confirmed up front.
            "email_confirm": True,
        }
        if phone:
            payload["phone"] = phone
        response = self._request(
            "POST",
            "/admin/users",
            "create_user",
            headers={"Authorization": f"Bearer {self.service_key}"},
            json=payload,
        )
        if 400 <= response.status_code < 500:
            raise ValidationError("signup", _error_message(response))
        if response.status_code not in (200, 201):
            raise IdentityProviderError("create_user", _error_message(response))
        body = response.json()
        return _principal_from_user(body.get("user", body))

    def sign_in(self, email: str, password: str) -> str:
        response = self._request(
            "POST",
            "/token",
            "sign_in",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code in (400, 401):
            raise InvalidCredentialsError()
        if response.status_code != 200:
            raise IdentityProviderError("sign_in", _error_message(response))
        return response.json()["access_token"]


class LocalIdentityProvider:
    """Identity kept in the local key-value store, for development and tests."""

    def __init__(
        self,
        store: KeyValueStore,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Callable[[], datetime] = _default_clock,
    ):
        self.store = store
        self.token_ttl = token_ttl
        self.clock = clock

    def _customer_key(self, email: str) -> str:
        return f"{CUSTOMER_KEY_PREFIX}{email.strip().lower()}"

    @staticmethod
    def _principal(data: dict[str, Any]) -> CustomerPrincipal:
        return CustomerPrincipal(
            id=data["id"], email=data["email"], name=data.get("name"), phone=data.get("phone")
        )

    def resolve(self, access_token: str) -> CustomerPrincipal:
        key = f"{ACCESS_TOKEN_KEY_PREFIX}{access_token}"
        token = self.store.get(key) if access_token else None
        if token is None:
            raise UnauthorizedError("invalid access token")
        if _has_expired(token.get("createdAt"), self.token_ttl, self.clock()):
            self.store.delete(key)
            raise UnauthorizedError("access token expired")
        data = self.store.get(self._customer_key(token["email"]))
        if data is None:
            raise UnauthorizedError("account no longer exists")
        return self._principal(data)

    def create_user(
        self, email: str, password: str, name: str, phone: str | None = None
    ) -> CustomerPrincipal:
        if "@" not in email:
            raise ValidationError("email", "not an email address")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError("password", f"must be at least {MIN_PASSWORD_LENGTH} characters")

        def register(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is not None:
                raise ValidationError("email", "already registered")
            return {
                "id": str(uuid.uuid4()),
                "email": email.strip(),
                "name": name,
                "phone": phone,
                "passwordHash": hash_password(password),
                "createdAt": _utc_now(),
            }

        data = self.store.update(self._customer_key(email), register)
        logger.info("Customer %s signed up", data["id"])
        return self._principal(data)

    def sign_in(self, email: str, password: str) -> str:
        data = self.store.get(self._customer_key(email))
        if data is None or not check_password(password, data.get("passwordHash", "")):
            raise InvalidCredentialsError()
        now = self.clock()
        self.store.delete_matching(
            ACCESS_TOKEN_KEY_PREFIX,
            lambda _key, value: _has_expired(value.get("createdAt"), self.token_ttl, now),
        )
        token = secrets.token_urlsafe(32)
        self.store.set(
            f"{ACCESS_TOKEN_KEY_PREFIX}{token}",
            {"email": data["email"], "createdAt": _to_iso(now)},
        )
        return token


def build_identity_provider(settings: Settings, store: KeyValueStore) -> IdentityProvider:
    """Supabase when it's configured, the local store otherwise."""
    if settings.supabase_url and settings.supabase_service_key:
        return SupabaseIdentityProvider(settings.supabase_url, settings.supabase_service_key)
    logger.info("Supabase not configured; using local customer identities")
    return LocalIdentityProvider(store, token_ttl=settings.session_ttl)
