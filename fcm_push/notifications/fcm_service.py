from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from fcm_push.config import Settings, get_settings
from fcm_push.integrations.credentials import Configured, CredentialState, load_credential_state
from fcm_push.integrations.http_client import GatewayTransportError, HttpClient, HttpResponse
from fcm_push.integrations.token_cache import AccessTokenCache, shared_token_cache
from fcm_push.models.notification import BatchResult, BatchSummary, SendResult, TokenValidation
from fcm_push.notifications.cleanup import CleanupSignal, TokenStore
from fcm_push.notifications.errors import (
    INVALID_TOKEN_CATEGORIES,
    ConfigurationError,
    ErrorCategory,
    TokenExchangeError,
    category_value,
    classify,
)
from fcm_push.notifications.message import FcmMessage
from fcm_push.utils.validation import looks_like_registration_token, mask_private_key, mask_token

logger = logging.getLogger(__name__)

PROBE_DATA = {"probe": "token_validation"}
AUTH_RETRY_CATEGORIES = frozenset({ErrorCategory.AUTH_EXPIRED.value, ErrorCategory.UNAUTHORIZED.value})


class FcmService:
    def __init__(
        self,
        settings: Settings | None = None,
        credential_state: CredentialState | None = None,
        http_client: HttpClient | None = None,
        token_cache: AccessTokenCache | None = None,
        signal: CleanupSignal | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.credential_state = credential_state or load_credential_state(self.settings)
        self.http_client = http_client or HttpClient(self.settings.http_max_attempts, self.settings.http_backoff)
        self.signal = signal or CleanupSignal(lock_seconds=self.settings.cleanup_lock_seconds)

        if token_cache is None and isinstance(self.credential_state, Configured):
            token_cache = shared_token_cache(self.credential_state.credential, self.settings, self.http_client)
        self.token_cache = token_cache

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "FcmService":
        return cls(settings=settings)

    @property
    def is_configured(self) -> bool:
        return isinstance(self.credential_state, Configured) and self.token_cache is not None

    @property
    def send_url(self) -> str:
        project_id = self.credential_state.credential.project_id if isinstance(self.credential_state, Configured) else ""
        return f"{self.settings.base_url}/{project_id}/messages:send"

    def status(self) -> dict[str, Any]:
        report: dict[str, Any] = {
            "state": self.credential_state.state,
            "problems": list(getattr(self.credential_state, "problems", ())),
            "base_url": self.settings.base_url,
            "oauth_url": self.settings.oauth_url,
            "timeout": self.settings.timeout,
            "default_mode": self.settings.default_mode,
            "auto_cleanup_tokens": self.settings.auto_cleanup_tokens,
            "max_auth_retries": self.settings.max_auth_retries,
        }
        if isinstance(self.credential_state, Configured):
            credential = self.credential_state.credential
            report["project_id"] = credential.project_id
            report["client_email"] = credential.client_email
            report["private_key"] = mask_private_key(credential.private_key)
        return report

    # Single sends

    def send_to_device(
        self,
        token: str,
        message: FcmMessage,
        attempt: int = 0,
        max_retries: int | None = None,
    ) -> SendResult:
        result = self._deliver(token, message, attempt=attempt, max_retries=max_retries)
        if self.settings.auto_cleanup_tokens and result.error_category in INVALID_TOKEN_CATEGORIES:
            self.signal.notify_invalid(token)
        return result

    def _deliver(
        self,
        token: str,
        message: FcmMessage,
        attempt: int = 0,
        max_retries: int | None = None,
        validate_only: bool = False,
    ) -> SendResult:
        if not self.is_configured:
            logger.error(
                "FCM: Send rejected, engine not configured",
                extra={"token": mask_token(token), "state": self.credential_state.state},
            )
            return SendResult(
                success=False,
                token=token,
                attempts=0,
                error=self.credential_state.reason,
                error_category=ErrorCategory.CONFIGURATION.value,
            )

        ceiling = self.settings.max_auth_retries if max_retries is None else max_retries
        payload: dict[str, Any] = {"message": {"token": token, **message.to_wire_format()}}
        if validate_only:
            payload["validate_only"] = True

        current = attempt
        attempts = 0
        while True:
            attempts += 1
            outcome = self._attempt(token, message, payload)
            if isinstance(outcome, SendResult):
                outcome.attempts = attempts
                return outcome

            status_code, classification, sent_with = outcome
            if classification.evict_access_token:
                self.token_cache.invalidate(sent_with)

            # Provider-coded 401s such as THIRD_PARTY_AUTH_ERROR are not about our bearer token.
            auth_rejected = classification.category in AUTH_RETRY_CATEGORIES
            if auth_rejected and current < ceiling:
                logger.info(
                    "FCM: Access token rejected, retrying with a fresh token",
                    extra={"token": mask_token(token), "attempt": current, "max_retries": ceiling},
                )
                if current > 0:
                    time.sleep(self.settings.auth_retry_delay)
                current += 1
                continue

            logger.warning(
                "FCM: API Error",
                extra={
                    "error_type": classification.category,
                    "status_code": status_code,
                    "token": mask_token(token),
                    "title": message.title,
                },
            )
            return SendResult(
                success=False,
                token=token,
                attempts=attempts,
                error=f"{classification.message} (HTTP {status_code})",
                error_category=classification.category,
            )

    def _attempt(self, token: str, message: FcmMessage, payload: dict[str, Any]):
        # One gateway call: a final SendResult, or (status, classification, bearer used) to retry on.
        try:
            access_token = self.token_cache.get_token()
        except ConfigurationError as exc:
            logger.error("FCM: Credential signing failed", extra={"error": str(exc)})
            return self._failure(token, str(exc), ErrorCategory.CONFIGURATION)
        except TokenExchangeError as exc:
            unreachable = exc.status_code is None or exc.status_code >= 500
            category = ErrorCategory.SERVER_ERROR if unreachable else ErrorCategory.UNAUTHORIZED
            return self._failure(token, str(exc), category)

        try:
            response = self.http_client.post_json(
                self.send_url,
                payload,
                timeout=self.settings.timeout,
                headers={"Authorization": f"Bearer {access_token.value}"},
            )
        except GatewayTransportError as exc:
            logger.error("FCM: Failed to send message", extra={"token": mask_token(token), "error": str(exc)})
            return self._failure(token, str(exc), ErrorCategory.SERVER_ERROR)
        except Exception as exc:
            logger.exception("FCM: Unexpected error while sending message", extra={"token": mask_token(token)})
            return self._failure(token, f"Unexpected error: {exc}", ErrorCategory.UNKNOWN)

        if response.ok:
            return self._success(token, message, response)
        return response.status_code, classify(response.status_code, response.body), access_token

    def _success(self, token: str, message: FcmMessage, response: HttpResponse) -> SendResult:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return self._failure(token, f"Malformed gateway response: {response.body[:200]}", ErrorCategory.UNKNOWN)

        logger.info(
            "FCM: Message sent successfully",
            extra={"token": mask_token(token), "title": message.title, "mode": message.mode.value},
        )
        return SendResult(success=True, token=token, response=body)

    @staticmethod
    def _failure(token: str, error: str, category: ErrorCategory | str) -> SendResult:
        return SendResult(success=False, token=token, error=error, error_category=category_value(category))

    # Batches

    def send_to_many(
        self,
        tokens: list[str],
        message: FcmMessage,
        max_workers: int | None = None,
    ) -> BatchResult:
        batch = self.summarize(self._deliver_all(tokens, message, max_workers))
        logger.info(
            "FCM: Batch send completed",
            extra={
                "total_tokens": batch.summary.total,
                "success_count": batch.summary.success_count,
                "failure_count": batch.summary.failure_count,
                "unregistered_count": len(batch.summary.invalid_tokens),
                "title": message.title,
                "mode": message.mode.value,
            },
        )

        if self.settings.auto_cleanup_tokens:
            for token in batch.summary.invalid_tokens:
                self.signal.notify_invalid(token)
        return batch

    def send_to_many_with_cleanup(
        self,
        tokens: list[str],
        message: FcmMessage,
        token_store: TokenStore | None = None,
        max_workers: int | None = None,
    ) -> BatchResult:
        if token_store is None:
            return self.send_to_many(tokens, message, max_workers=max_workers)

        batch = self.summarize(self._deliver_all(tokens, message, max_workers))
        invalid = batch.summary.invalid_tokens
        if invalid:
            try:
                removed = token_store.delete_tokens(invalid)
                logger.info("FCM: Cleaned up unregistered tokens", extra={"tokens_removed": removed})
            except Exception as exc:
                logger.exception("FCM: Failed to cleanup unregistered tokens", extra={"error": str(exc)})
        return batch

    def _deliver_all(self, tokens: list[str], message: FcmMessage, max_workers: int | None) -> list[SendResult]:
        workers = max(1, max_workers if max_workers is not None else self.settings.batch_workers)
        if workers > 1 and len(tokens) > 1:
            with ThreadPoolExecutor(max_workers=min(workers, len(tokens)), thread_name_prefix="fcm-send") as pool:
                return list(pool.map(lambda t: self._deliver(t, message), tokens))
        return [self._deliver(token, message) for token in tokens]

    @staticmethod
    def summarize(results: list[SendResult]) -> BatchResult:
        invalid: list[str] = []
        seen: set[str] = set()
        for result in results:
            if result.error_category in INVALID_TOKEN_CATEGORIES and result.token not in seen:
                seen.add(result.token)
                invalid.append(result.token)
        success_count = sum(1 for r in results if r.success)
        summary = BatchSummary(
            total=len(results),
            success_count=success_count,
            failure_count=len(results) - success_count,
            invalid_tokens=invalid,
        )
        return BatchResult(results=results, summary=summary)

    # Validation

    def validate_token(self, token: str) -> TokenValidation:
        if not looks_like_registration_token(token):
            return TokenValidation(
                token=token,
                valid=False,
                category=ErrorCategory.INVALID_TOKEN.value,
                message="Token does not look like an FCM registration token",
            )

        result = self._deliver(token, FcmMessage.data_only(PROBE_DATA), validate_only=True)
        if result.success:
            return TokenValidation(token=token, valid=True, message="Token accepted by FCM")
        return TokenValidation(
            token=token,
            valid=False,
            category=result.error_category,
            message=result.error or "Token rejected by FCM",
        )

    def validate_tokens(self, tokens: list[str]) -> list[TokenValidation]:
        validations = [self.validate_token(token) for token in tokens]
        invalid_count = sum(1 for v in validations if not v.valid)
        if invalid_count:
            logger.warning(
                "FCM: Invalid tokens detected",
                extra={"invalid_count": invalid_count, "valid_count": len(validations) - invalid_count},
            )
        return validations
