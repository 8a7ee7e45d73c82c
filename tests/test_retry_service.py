"""Tests for the retry decider and retry runner."""

import asyncio

import pytest

from keyprobe.models import Credential, CredentialStatus, ProbeOutcome, ProviderType
from keyprobe.services.retry_service import (
    PROBE_EXCEPTION,
    RetryRunner,
    extract_status_code,
    should_retry,
)
from tests.mocks import ScriptedProbe


def make(value="k1", provider=ProviderType.OPENAI):
    return Credential(value=value, provider=provider, model="gpt-4o")


def run(runner, cred):
    return asyncio.run(runner.run_with_retry(cred))


class TestExtractStatusCode:
    """Tests for extract_status_code."""

    def test_parenthesized(self):
        assert extract_status_code("Rate Limited (429)") == 429
        assert extract_status_code("Permission denied (403)") == 403

    def test_http_marker(self):
        assert extract_status_code("HTTP 502") == 502
        assert extract_status_code("upstream said HTTP 504 again") == 504

    def test_parenthesized_wins(self):
        assert extract_status_code("HTTP 500 (503)") == 503

    def test_unknown(self):
        assert extract_status_code("Invalid response format") is None
        assert extract_status_code("") is None
        assert extract_status_code(None) is None
        assert extract_status_code("(12)") is None


class TestShouldRetry:
    """Tests for should_retry."""

    @pytest.mark.parametrize("code", [403, 502, 503, 504])
    def test_retryable_codes(self, code):
        assert should_retry(f"HTTP {code}", code)

    @pytest.mark.parametrize("code", [400, 401, 404, 500])
    def test_definitive_codes(self, code):
        assert not should_retry(f"HTTP {code}", code)

    @pytest.mark.parametrize(
        "detail",
        [
            "Request timeout after 20s",
            "Network connection failed: could not resolve host",
            "Connection reset by peer",
            "Failed to fetch",
        ],
    )
    def test_transport_markers(self, detail):
        assert should_retry(detail, None)

    def test_application_error_not_retried(self):
        assert not should_retry("API error: model not found", None)
        assert not should_retry(None, None)


class TestRetryRunner:
    """Tests for RetryRunner."""

    def test_success_first_attempt(self):
        probe = ScriptedProbe()
        cred = make()
        outcome = run(RetryRunner(probe, max_retries=3, jitter_ms=(0, 0)), cred)

        assert outcome.success
        assert cred.status == CredentialStatus.VALID
        assert cred.attempt == 0
        assert probe.calls["k1"] == 1

    def test_transient_then_success(self):
        probe = ScriptedProbe(
            {"k1": [ProbeOutcome.failed("HTTP 502"), ProbeOutcome.ok()]}
        )
        cred = make()
        run(RetryRunner(probe, max_retries=2, jitter_ms=(0, 0)), cred)

        assert cred.status == CredentialStatus.VALID
        assert cred.attempt == 1
        assert cred.last_error is None
        assert probe.calls["k1"] == 2

    def test_rate_limit_never_retried(self):
        probe = ScriptedProbe(
            {"k1": [ProbeOutcome.failed("Rate Limited (429)", rate_limited=True)]}
        )
        cred = make()
        run(RetryRunner(probe, max_retries=5, jitter_ms=(0, 0)), cred)

        assert cred.status == CredentialStatus.RATE_LIMITED
        assert cred.attempt == 0
        assert probe.calls["k1"] == 1

    def test_auth_failure_not_retried(self):
        probe = ScriptedProbe({"k1": [ProbeOutcome.failed("HTTP 401")]})
        cred = make()
        run(RetryRunner(probe, max_retries=5, jitter_ms=(0, 0)), cred)

        assert cred.status == CredentialStatus.INVALID
        assert cred.last_error == "HTTP 401"
        assert probe.calls["k1"] == 1

    def test_retries_exhausted_keep_last_error(self):
        probe = ScriptedProbe(
            {
                "k1": [
                    ProbeOutcome.failed("HTTP 503"),
                    ProbeOutcome.failed("HTTP 502"),
                    ProbeOutcome.failed("Permission denied (403)"),
                ]
            }
        )
        cred = make()
        run(RetryRunner(probe, max_retries=2, jitter_ms=(0, 0)), cred)

        assert cred.status == CredentialStatus.INVALID
        assert cred.last_error == "Permission denied (403)"
        assert cred.attempt == 2
        assert probe.calls["k1"] == 3

    @pytest.mark.parametrize("max_retries", [0, 1, 3])
    def test_attempts_bounded(self, max_retries):
        probe = ScriptedProbe({"k1": [ProbeOutcome.failed("Network connection failed")]})
        cred = make()
        runner = RetryRunner(probe, max_retries=max_retries, jitter_ms=(0, 0))
        run(runner, cred)

        assert probe.calls["k1"] == max_retries + 1
        assert runner.probe_calls == max_retries + 1
        assert cred.attempt == max_retries

    def test_exception_is_retried(self):
        probe = ScriptedProbe({"k1": [RuntimeError("boom"), ProbeOutcome.ok()]})
        cred = make()
        run(RetryRunner(probe, max_retries=1, jitter_ms=(0, 0)), cred)

        assert cred.status == CredentialStatus.VALID
        assert cred.attempt == 1

    def test_exception_on_last_attempt(self):
        probe = ScriptedProbe({"k1": [RuntimeError("boom")]})
        cred = make()
        outcome = run(RetryRunner(probe, max_retries=1, jitter_ms=(0, 0)), cred)

        assert not outcome.success
        assert cred.status == CredentialStatus.INVALID
        assert cred.last_error == f"{PROBE_EXCEPTION}: boom"
        assert probe.calls["k1"] == 2

    def test_status_passes_through_retrying(self):
        seen = []

        class ObservingProbe(ScriptedProbe):
            async def probe(self, credential, model):
                seen.append((cred.status, cred.attempt))
                return await super().probe(credential, model)

        probe = ObservingProbe(
            {"k1": [ProbeOutcome.failed("HTTP 503"), ProbeOutcome.failed("HTTP 503"), ProbeOutcome.ok()]}
        )
        cred = make()
        run(RetryRunner(probe, max_retries=2, jitter_ms=(0, 0)), cred)

        assert seen == [
            (CredentialStatus.TESTING, 0),
            (CredentialStatus.RETRYING, 1),
            (CredentialStatus.RETRYING, 2),
        ]

    def test_gemini_paid_hint(self):
        probe = ScriptedProbe({"k1": [ProbeOutcome.ok(paid_hint=True)]})
        cred = make(provider=ProviderType.GEMINI)
        run(RetryRunner(probe, max_retries=0, jitter_ms=(0, 0)), cred)
        assert cred.status == CredentialStatus.PAID

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryRunner(ScriptedProbe(), max_retries=-1)

    def test_default_jitter_from_settings(self):
        runner = RetryRunner(ScriptedProbe(), max_retries=0)
        low, high = runner.jitter_ms
        assert low <= high
        assert low / 1000 <= runner._jitter_seconds() <= high / 1000
