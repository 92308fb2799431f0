"""Environment configuration for the booking core."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

DB_PATH = Path(os.getenv("MINDSPACE_DB_PATH", Path(__file__).parent / "mindspace.db"))

# "local" uses the SQLite profiles table, "hosted" calls the auth/data service over HTTP
IDENTITY_BACKEND = os.getenv("IDENTITY_BACKEND", "local")

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(level: str | None = None) -> None:
    """Apply LOG_LEVEL to the root logger."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_identity_store():
    """Return the identity store selected by IDENTITY_BACKEND."""
    from mindspace_booking.identity import HostedIdentityStore
    from mindspace_booking.database.profile_repository import ProfileRepository

    if IDENTITY_BACKEND == "hosted":
        return HostedIdentityStore(SUPABASE_URL, SUPABASE_ANON_KEY, timeout=REQUEST_TIMEOUT)
    return ProfileRepository()
