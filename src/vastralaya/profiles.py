"""Customer profiles."""

from typing import Any

from .errors import ValidationError
from .kv_store import KeyValueStore
from .models import Address, CustomerPrincipal, UserProfile

PROFILE_KEY_PREFIX = "user_profile:"


class ProfileService:
    """Reads and updates the profile stored for each customer."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _key(self, user_id: str) -> str:
        return f"{PROFILE_KEY_PREFIX}{user_id}"

    @staticmethod
    def _default_profile(customer: CustomerPrincipal) -> UserProfile:
        name = customer.name or customer.email.split("@")[0] or "Customer"
        return UserProfile(user_id=customer.id, name=name, user_type="customer")

    def get_or_create(self, customer: CustomerPrincipal) -> UserProfile:
        """Return the stored profile, creating a default one on first access."""

        def ensure(current: dict[str, Any] | None) -> dict[str, Any] | None:
            if current is not None:
                return None
            return self._default_profile(customer).to_dict()

        return UserProfile.from_dict(self.store.update(self._key(customer.id), ensure))

    def update_address(self, customer: CustomerPrincipal, address: Address) -> UserProfile:
        """
        Save the customer's default shipping address.

        Raises:
            ValidationError: If a field is blank.
        """
        missing = address.missing_fields()
        if missing:
            raise ValidationError("address", f"missing {', '.join(missing)}")

        def apply(current: dict[str, Any] | None) -> dict[str, Any]:
            profile = (
                UserProfile.from_dict(current) if current else self._default_profile(customer)
            )
            profile.address = address
            return profile.to_dict()

        return UserProfile.from_dict(self.store.update(self._key(customer.id), apply))
