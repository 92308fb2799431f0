"""Identity & Role Store: principals, profiles and the hosted auth service client."""

import logging
from dataclasses import dataclass
from enum import Enum

import requests

logger = logging.getLogger(__name__)


class Role(Enum):
    """Role tag carried by every profile."""
    PATIENT = "patient"
    THERAPIST = "therapist"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value) -> "Role | None":
        """Map a stored role value to a Role, or None when unresolvable."""
        if isinstance(value, cls):
            return value
        # Profiles created by the hosted signup trigger use "user" for patients
        if value == "user":
            return cls.PATIENT
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class Principal:
    """The acting identity passed into every core operation.

    ``role`` is whatever the caller claims; guarded operations replace it with
    the role stored in the identity store before deciding anything.
    """
    id: str
    role: Role | None = None
    email: str | None = None


@dataclass
class Profile:
    id: str
    email: str
    role: Role | None = None
    full_name: str | None = None
    phone: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class IdentityStoreError(Exception):
    """Raised when the identity store cannot be reached or answers unexpectedly."""
    pass


def default_full_name(email: str) -> str:
    """Display name used when signup metadata carries none."""
    return email.split("@", 1)[0]


class HostedIdentityStore:
    """Identity store backed by a hosted auth + REST data service.

    Authenticates bearer tokens against ``/auth/v1/user`` and reads profiles
    from ``/rest/v1/profiles``. The API key should be allowed to read every
    profile; if row-level security hides a profile the lookup returns None
    and guarded operations deny.
    """

    def __init__(self, url: str | None, api_key: str | None, timeout: float = 10):
        if not url or not api_key:
            raise IdentityStoreError("SUPABASE_URL and SUPABASE_ANON_KEY environment variables must be set")
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def authenticate(self, access_token: str | None) -> Principal | None:
        """Resolve a bearer token to a principal, or None if the token is not valid."""
        if not access_token:
            return None

        response = self._request("GET", "/auth/v1/user", headers=self._headers(access_token))
        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            raise IdentityStoreError(f"Auth service error: {response.status_code}")

        user_id = response.json().get("id")
        if not user_id:
            return None

        profile = self.get_profile(user_id)
        if profile is None:
            return None
        return Principal(id=profile.id, role=profile.role, email=profile.email)

    def get_profile(self, user_id: str) -> Profile | None:
        """Fetch the current profile for a user id."""
        response = self._request(
            "GET",
            "/rest/v1/profiles",
            headers=self._headers(),
            params={"user_id": f"eq.{user_id}", "select": "*"},
        )
        if response.status_code != 200:
            raise IdentityStoreError(f"Profile lookup failed: {response.status_code}")

        rows = response.json()
        if not rows:
            return None
        return self._row_to_profile(rows[0])

    def create_profile(
        self,
        user_id: str,
        email: str,
        role: Role | None = None,
        full_name: str | None = None,
    ) -> Profile:
        """Create the profile row for a newly signed-up principal."""
        payload = {
            "user_id": user_id,
            "email": email,
            "role": (role or Role.PATIENT).value,
            "full_name": full_name or default_full_name(email),
        }
        headers = self._headers()
        headers["Prefer"] = "return=representation"

        response = self._request("POST", "/rest/v1/profiles", headers=headers, json=payload)
        if response.status_code not in (200, 201):
            raise IdentityStoreError(f"Profile creation failed: {response.status_code}")

        rows = response.json()
        return self._row_to_profile(rows[0] if isinstance(rows, list) else rows)

    def set_role(self, user_id: str, role: Role) -> Profile | None:
        """Overwrite a profile's role. Callers check the actor is an admin."""
        headers = self._headers()
        headers["Prefer"] = "return=representation"

        response = self._request(
            "PATCH",
            "/rest/v1/profiles",
            headers=headers,
            params={"user_id": f"eq.{user_id}"},
            json={"role": role.value},
        )
        if response.status_code not in (200, 204):
            raise IdentityStoreError(f"Role update failed: {response.status_code}")

        rows = response.json() if response.status_code == 200 else []
        return self._row_to_profile(rows[0]) if rows else None

    def _headers(self, access_token: str | None = None) -> dict:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {access_token or self.api_key}",
        }

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return requests.request(method, f"{self.url}{path}", timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            logger.error("Identity service request timed out: %s %s", method, path)
            raise IdentityStoreError("Identity service request timed out")
        except requests.exceptions.ConnectionError:
            logger.error("Failed to connect to identity service: %s %s", method, path)
            raise IdentityStoreError("Failed to connect to identity service")

    def _row_to_profile(self, row: dict) -> Profile:
        return Profile(
            id=row["user_id"],
            email=row.get("email"),
            role=Role.parse(row.get("role")),
            full_name=row.get("full_name"),
            phone=row.get("phone"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
