"""Test doubles for network-free tests."""

from tests.mocks.fake_http import FakeResponse, FakeSession
from tests.mocks.fake_probe import ScriptedProbe, ScriptedTierProbe

__all__ = ["FakeResponse", "FakeSession", "ScriptedProbe", "ScriptedTierProbe"]
