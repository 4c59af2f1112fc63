from __future__ import annotations

import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = ("SUPABASE_URL", "SUPABASE_KEY")


def get_client() -> Any:
    """Build the Supabase client used by every repository when SKYLINK_STORAGE_BACKEND=supabase."""
    missing = [name for name in REQUIRED_SETTINGS if not os.getenv(name)]
    if missing:
        raise RuntimeError(f"Supabase storage needs {', '.join(missing)} to be set")
    try:
        from supabase import create_client
    except ImportError as exc:  # pragma: no cover - only reached in supabase mode
        raise RuntimeError("Install skylink-booking[supabase] to use the Supabase storage backend") from exc

    logger.debug("Connecting repositories to Supabase at %s", os.environ["SUPABASE_URL"])
    return create_client(os.environ["SUPABASE_URL"], os.environ["SUPABASE_KEY"])
