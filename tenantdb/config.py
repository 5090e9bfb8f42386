from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Tuple


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


# Top-level routes of the web UI. An owner with one of these names would
# shadow a page, so the owner/database validator refuses them.
_DEFAULT_RESERVED_OWNERS = "about,admin,api,branches,commits,compare,contributors,diffs,download,forks,login,logout,pref,register,selectusername,settings,stars,static,tags,upload,vis,x"


@dataclass(frozen=True)
class Settings:
    # -----------------
    # Form parsing
    # -----------------
    # Upper bound on an urlencoded request body. Larger bodies are rejected
    # as malformed rather than read into memory.
    max_form_bytes: int = int(os.getenv("MAX_FORM_BYTES", str(10 * 1024 * 1024)))
    max_form_fields: int = int(os.getenv("MAX_FORM_FIELDS", "1000"))

    # -----------------
    # Identifiers
    # -----------------
    reserved_owner_names: Tuple[str, ...] = tuple(
        n.lower() for n in _split_csv(os.getenv("RESERVED_OWNER_NAMES", _DEFAULT_RESERVED_OWNERS))
    )

    # -----------------
    # Logging
    # -----------------
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format: str = os.getenv("LOG_FORMAT", "json").lower()  # json|console
    # Level for the loggers that record rejected input detail; empty = inherit LOG_LEVEL.
    input_log_level: str = os.getenv("INPUT_LOG_LEVEL", "").upper()


settings = Settings()
