from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from fcm_push.config import Settings
from fcm_push.utils.validation import is_valid_email, is_valid_project_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceCredential:
    project_id: str
    client_email: str
    private_key: str = field(repr=False)

    @classmethod
    def from_service_account_file(cls, path: str | Path) -> "ServiceCredential":
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        return cls(
            project_id=str(data.get("project_id", "")).strip(),
            client_email=str(data.get("client_email", "")).strip(),
            private_key=str(data.get("private_key", "")).strip(),
        )

    def problems(self) -> list[str]:
        found: list[str] = []
        if not self.project_id:
            found.append("project_id is not set")
        elif not is_valid_project_id(self.project_id):
            found.append("project_id must be lowercase alphanumeric with hyphens")

        if not self.client_email:
            found.append("client_email is not set")
        elif not is_valid_email(self.client_email):
            found.append("client_email is not a valid email address")

        if not self.private_key:
            found.append("private_key is not set")
        elif not _is_rsa_private_key(self.private_key):
            found.append("private_key is not a PEM encoded RSA private key")
        return found


def _is_rsa_private_key(pem: str) -> bool:
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        return False
    return isinstance(key, rsa.RSAPrivateKey)


@dataclass(frozen=True)
class Unconfigured:
    reason: str = "FCM credentials have not been configured"

    state: ClassVar[str] = "unconfigured"


@dataclass(frozen=True)
class InvalidConfiguration:
    problems: tuple[str, ...]

    state: ClassVar[str] = "invalid"

    @property
    def reason(self) -> str:
        return "FCM configuration is invalid: " + "; ".join(self.problems)


@dataclass(frozen=True)
class Configured:
    credential: ServiceCredential

    state: ClassVar[str] = "configured"


CredentialState = Unconfigured | InvalidConfiguration | Configured


def credential_state_for(credential: ServiceCredential) -> CredentialState:
    if not (credential.project_id or credential.client_email or credential.private_key):
        return Unconfigured()
    problems = credential.problems()
    if problems:
        return InvalidConfiguration(tuple(problems))
    return Configured(credential)


def load_credential_state(settings: Settings) -> CredentialState:
    if settings.credentials_file:
        try:
            credential = ServiceCredential.from_service_account_file(settings.credentials_file)
        except (OSError, ValueError) as exc:
            logger.error("Failed to read FCM service account file", extra={"error": str(exc)})
            return InvalidConfiguration((f"credentials_file could not be read: {exc}",))
        # Explicit settings win over the file so a single value can be overridden.
        credential = ServiceCredential(
            project_id=settings.project_id or credential.project_id,
            client_email=settings.client_email or credential.client_email,
            private_key=settings.private_key or credential.private_key,
        )
    else:
        credential = ServiceCredential(settings.project_id, settings.client_email, settings.private_key)

    state = credential_state_for(credential)
    if isinstance(state, Unconfigured):
        logger.warning("FCM credentials not configured; sends will be rejected")
    elif isinstance(state, InvalidConfiguration):
        logger.error("FCM configuration is invalid", extra={"problems": list(state.problems)})
    return state
