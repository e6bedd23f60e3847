"""Shared fixtures for tradeadvisor tests."""

import pytest

from tests.fakes import FakeBroker, FakeTransport, completion_body
from tradeadvisor.broker.models import Provider
from tradeadvisor.config import reset_settings
from tradeadvisor.orchestration.orchestrator import Orchestrator

PROVIDER_ADDRESS = "0xf07240Efa67755B5311bc75784a061eDB47165Dd"
CALLER_ADDRESS = "0x6a2e1b0C4b0a9f3E5aB2c7D8e9F0a1B2c3D4e5F6"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep settings independent of the developer's environment and .env."""
    monkeypatch.chdir(tmp_path)
    for var in ("TRADEADVISOR_BROKER_API_SECRET", "TRADEADVISOR_CALLER_ADDRESS"):
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def provider():
    return Provider(address=PROVIDER_ADDRESS, name="llama-node", model="llama-3.3-70b-instruct")


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def transport():
    return FakeTransport(json_body=completion_body())


@pytest.fixture
def make_orchestrator(broker, transport):
    def factory(**kwargs):
        kwargs.setdefault("caller", CALLER_ADDRESS)
        kwargs.setdefault("ledger_timeout", 1.0)
        kwargs.setdefault("inference_timeout", 1.0)
        return Orchestrator(
            ledger=broker,
            registry=broker,
            verifier=broker,
            transport=transport,
            **kwargs,
        )

    return factory
