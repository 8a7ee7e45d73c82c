"""Tests for the credential record state machine."""

import pytest

from keyprobe.exceptions import StateError
from keyprobe.models import (
    TERMINAL_STATUSES,
    Credential,
    CredentialStatus,
    ProbeOutcome,
    ProviderType,
)


def make(provider=ProviderType.OPENAI, value="sk-test-1234567890"):
    return Credential(value=value, provider=provider, model="m")


class TestCredential:
    """Tests for Credential transitions."""

    def test_initial_state(self):
        cred = make()
        assert cred.status == CredentialStatus.PENDING
        assert cred.attempt == 0
        assert cred.last_error is None
        assert cred.is_paid_tier is None
        assert cred.completed_at is None
        assert not cred.is_terminal

    def test_value_is_stripped(self):
        cred = Credential(value="  key-1  ", provider="claude", model=" m ")
        assert cred.value == "key-1"
        assert cred.model == "m"
        assert cred.provider == ProviderType.CLAUDE

    def test_testing_then_valid(self):
        cred = make()
        cred.mark_testing()
        assert cred.status == CredentialStatus.TESTING
        assert cred.completed_at is None

        cred.finalize(ProbeOutcome.ok(), attempt=0)
        assert cred.status == CredentialStatus.VALID
        assert cred.completed_at is not None

    def test_retrying_can_repeat(self):
        cred = make()
        cred.mark_testing()
        cred.mark_retrying(1)
        cred.mark_retrying(2)
        assert cred.status == CredentialStatus.RETRYING
        assert cred.attempt == 2

    def test_rate_limited_and_invalid(self):
        limited = make()
        limited.mark_testing()
        limited.finalize(ProbeOutcome.failed("Rate Limited (429)", rate_limited=True), 0)
        assert limited.status == CredentialStatus.RATE_LIMITED
        assert limited.last_error == "Rate Limited (429)"

        invalid = make()
        invalid.mark_testing()
        invalid.finalize(ProbeOutcome.failed("Authentication failed (401)"), 0)
        assert invalid.status == CredentialStatus.INVALID

    def test_terminal_states_are_final(self):
        cred = make()
        cred.mark_testing()
        cred.finalize(ProbeOutcome.ok(), 0)
        completed_at = cred.completed_at

        with pytest.raises(StateError):
            cred.mark_retrying(1)
        with pytest.raises(StateError):
            cred.finalize(ProbeOutcome.failed("x"), 0)
        assert cred.status == CredentialStatus.VALID
        assert cred.completed_at == completed_at

    def test_no_backward_transition(self):
        cred = make()
        cred.mark_testing()
        cred.mark_retrying(1)
        with pytest.raises(StateError):
            cred.mark_testing()

    def test_cannot_finalize_pending(self):
        with pytest.raises(StateError):
            make().finalize(ProbeOutcome.ok(), 0)

    def test_retry_attempt_must_be_positive(self):
        cred = make()
        cred.mark_testing()
        with pytest.raises(StateError):
            cred.mark_retrying(0)

    def test_gemini_paid_hint_gives_paid(self):
        cred = make(ProviderType.GEMINI)
        cred.mark_testing()
        cred.finalize(ProbeOutcome.ok(paid_hint=True), 0)
        assert cred.status == CredentialStatus.PAID
        assert cred.is_paid_tier is True

    def test_gemini_free_tier_stays_valid(self):
        cred = make(ProviderType.GEMINI)
        cred.mark_testing()
        cred.finalize(ProbeOutcome.ok(paid_hint=False), 0)
        assert cred.status == CredentialStatus.VALID
        assert cred.is_paid_tier is False

    def test_paid_hint_ignored_for_other_providers(self):
        cred = make(ProviderType.OPENAI)
        cred.mark_testing()
        cred.finalize(ProbeOutcome.ok(paid_hint=True), 0)
        assert cred.status == CredentialStatus.VALID
        assert cred.is_paid_tier is None

    def test_mark_failed_from_pending(self):
        cred = make()
        cred.mark_failed("Test exception: boom")
        assert cred.status == CredentialStatus.INVALID
        assert cred.last_error == "Test exception: boom"
        assert cred.completed_at is not None

    def test_mark_failed_keeps_terminal(self):
        cred = make()
        cred.mark_testing()
        cred.finalize(ProbeOutcome.ok(), 0)
        cred.mark_failed("late")
        assert cred.status == CredentialStatus.VALID
        assert cred.last_error is None

    def test_masked(self):
        assert make(value="sk-abcdefghijkl").masked == "sk-abcde..."
        assert "abcdefghijkl" not in make(value="sk-abcdefghijkl").masked

    def test_to_dict(self):
        cred = make(ProviderType.GEMINI, value="AIzaSyExample")
        cred.mark_testing()
        cred.finalize(ProbeOutcome.ok(paid_hint=True), 0)
        data = cred.to_dict()
        assert data["value"] == "AIzaSyExample"
        assert data["status"] == "paid"
        assert data["is_paid_tier"] is True
        assert data["attempt"] == 0
        assert "is_paid_tier" not in make().to_dict()

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {
            CredentialStatus.VALID,
            CredentialStatus.INVALID,
            CredentialStatus.RATE_LIMITED,
            CredentialStatus.PAID,
        }
