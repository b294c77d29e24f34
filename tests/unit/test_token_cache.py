from __future__ import annotations

import dataclasses
import threading

import jwt
import pytest

from fcm_push.integrations.credentials import ServiceCredential
from fcm_push.integrations.http_client import HttpResponse
from fcm_push.integrations.token_cache import (
    EXPIRY_MARGIN_SECONDS,
    JWT_BEARER_GRANT,
    AccessTokenCache,
    shared_token_cache,
)
from fcm_push.notifications.errors import ConfigurationError, TokenExchangeError
from tests.fakes import FakeHttpClient, access_token_response, unreachable


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def credential(fcm_settings) -> ServiceCredential:
    return ServiceCredential(fcm_settings.project_id, fcm_settings.client_email, fcm_settings.private_key)


def test_token_is_reused_while_fresh(credential, fcm_settings) -> None:
    http = FakeHttpClient()
    cache = AccessTokenCache(credential, fcm_settings, http)

    first = cache.get_token()
    second = cache.get_token()

    assert first.value == "ya29.test-token"
    assert second is first
    assert len(http.form_calls) == 1
    assert http.form_calls[0]["url"] == "https://oauth.test/token"
    assert http.form_calls[0]["fields"]["grant_type"] == JWT_BEARER_GRANT


def test_token_expires_five_minutes_early(credential, fcm_settings) -> None:
    clock = FakeClock()
    http = FakeHttpClient(oauth=[access_token_response("first", 3600), access_token_response("second", 3600)])
    cache = AccessTokenCache(credential, fcm_settings, http, clock=clock)

    assert cache.get_token().value == "first"
    clock.now += 3600 - EXPIRY_MARGIN_SECONDS - 1
    assert cache.get_token().value == "first"
    clock.now += 1
    assert cache.get_token().value == "second"
    assert cache.exchange_count == 2


def test_invalidate_forces_a_new_exchange(credential, fcm_settings) -> None:
    http = FakeHttpClient(oauth=[access_token_response("first"), access_token_response("second")])
    cache = AccessTokenCache(credential, fcm_settings, http)

    cache.get_token()
    cache.invalidate()

    assert cache.get_token().value == "second"


def test_caching_can_be_disabled(credential, fcm_settings) -> None:
    settings = dataclasses.replace(fcm_settings, cache_token=False)
    http = FakeHttpClient()
    cache = AccessTokenCache(credential, settings, http)

    cache.get_token()
    cache.get_token()

    assert len(http.form_calls) == 2


def test_concurrent_callers_share_one_exchange(credential, fcm_settings) -> None:
    http = FakeHttpClient(exchange_delay=0.05)
    cache = AccessTokenCache(credential, fcm_settings, http)
    barrier = threading.Barrier(10)
    values: list[str] = []

    def worker() -> None:
        barrier.wait()
        values.append(cache.get_token().value)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert values == ["ya29.test-token"] * 10
    assert len(http.form_calls) == 1


def test_assertion_claims(credential, fcm_settings, rsa_key) -> None:
    cache = AccessTokenCache(credential, fcm_settings, FakeHttpClient())

    assertion = cache.build_assertion(now=1_700_000_000)
    claims = jwt.decode(
        assertion,
        rsa_key.public_key(),
        algorithms=["RS256"],
        audience="https://oauth.test/token",
        options={"verify_exp": False, "verify_iat": False},
    )

    assert jwt.get_unverified_header(assertion)["alg"] == "RS256"
    assert claims["iss"] == credential.client_email
    assert claims["sub"] == credential.client_email
    assert claims["scope"] == fcm_settings.scope
    assert claims["exp"] - claims["iat"] == fcm_settings.jwt_expiry


def test_signing_failure_is_a_configuration_error(fcm_settings) -> None:
    broken = ServiceCredential("demo-project", fcm_settings.client_email, "not a key")
    http = FakeHttpClient()
    cache = AccessTokenCache(broken, fcm_settings, http)

    with pytest.raises(ConfigurationError):
        cache.get_token()
    assert http.form_calls == []


def test_rejected_exchange_carries_status(credential, fcm_settings) -> None:
    http = FakeHttpClient(oauth=[HttpResponse(400, '{"error": "invalid_grant"}')])
    cache = AccessTokenCache(credential, fcm_settings, http)

    with pytest.raises(TokenExchangeError) as excinfo:
        cache.get_token()

    assert excinfo.value.status_code == 400
    assert "invalid_grant" in excinfo.value.body


@pytest.mark.parametrize(
    "response",
    [HttpResponse(200, "not json"), HttpResponse(200, '{"token_type": "Bearer"}')],
)
def test_unusable_exchange_response(credential, fcm_settings, response) -> None:
    cache = AccessTokenCache(credential, fcm_settings, FakeHttpClient(oauth=[response]))

    with pytest.raises(TokenExchangeError):
        cache.get_token()


def test_unreachable_authorization_endpoint(credential, fcm_settings) -> None:
    cache = AccessTokenCache(credential, fcm_settings, FakeHttpClient(oauth=[unreachable()]))

    with pytest.raises(TokenExchangeError) as excinfo:
        cache.get_token()

    assert excinfo.value.status_code is None


def test_shared_cache_is_per_identity(credential, fcm_settings) -> None:
    other = ServiceCredential("demo-project", "other@demo-project.iam.gserviceaccount.com", credential.private_key)

    assert shared_token_cache(credential, fcm_settings) is shared_token_cache(credential, fcm_settings)
    assert shared_token_cache(other, fcm_settings) is not shared_token_cache(credential, fcm_settings)


def test_invalidating_a_stale_token_keeps_the_newer_one(credential, fcm_settings) -> None:
    http = FakeHttpClient(oauth=[access_token_response("first"), access_token_response("second")])
    cache = AccessTokenCache(credential, fcm_settings, http)

    stale = cache.get_token()
    cache.invalidate(stale)
    fresh = cache.get_token()
    cache.invalidate(stale)

    assert cache.get_token() is fresh
    assert len(http.form_calls) == 2
