from __future__ import annotations

import re

_PROJECT_ID_RE = re.compile(r"^[a-z0-9-]+$")
_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)+$")
_REGISTRATION_TOKEN_RE = re.compile(r"^[A-Za-z0-9_:-]+$")

MIN_REGISTRATION_TOKEN_LENGTH = 140


def is_valid_project_id(project_id: str) -> bool:
    return bool(_PROJECT_ID_RE.fullmatch(project_id))


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.fullmatch(email))


def looks_like_registration_token(token: str) -> bool:
    """Cheap structural check; the gateway is the only authority on registration."""
    clean = token.strip()
    return len(clean) >= MIN_REGISTRATION_TOKEN_LENGTH and bool(_REGISTRATION_TOKEN_RE.fullmatch(clean))


def mask_token(token: str) -> str:
    length = len(token)
    if length <= 8:
        return "*" * length
    return f"{token[:4]}{'*' * (length - 8)}{token[-4:]}"


def mask_private_key(private_key: str) -> str:
    masked: list[str] = []
    for line in private_key.split("\n"):
        if line.startswith("-----") or not line.strip():
            masked.append(line)
            continue
        masked.append(f"{line[:10]}{'*' * max(0, len(line) - 20)}{line[-10:]}")
    return "\n".join(masked)
