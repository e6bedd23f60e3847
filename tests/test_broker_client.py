"""
Tests for the broker gateway REST client.
"""

import asyncio
import base64
import json
from unittest.mock import Mock

import pytest
import requests
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from tradeadvisor.broker.client import BrokerClient
from tradeadvisor.broker.exceptions import (
    BrokerAPIError,
    BrokerAuthenticationError,
    BrokerNotFoundError,
    BrokerTimeoutError,
)

PROVIDER = "0xf07240Efa67755B5311bc75784a061eDB47165Dd"


@pytest.fixture(scope="module")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def pem(private_key):
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def http_response(status_code=200, payload=None):
    response = requests.Response()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Error"
    response._content = b"" if payload is None else json.dumps(payload).encode()
    response.url = "https://broker.test"
    return response


class TestBrokerClient:
    """BrokerClient request building and error mapping."""

    @pytest.fixture(autouse=True)
    def client(self, pem):
        self.client = BrokerClient(
            api_key="key-1", api_secret=pem, base_url="https://broker.test/v1/", timeout=3
        )
        self.client.session = Mock(spec=requests.Session)
        return self.client

    def respond(self, status_code=200, payload=None):
        self.client.session.request.return_value = http_response(status_code, payload)

    def sent(self):
        return self.client.session.request.call_args.kwargs

    def test_requests_are_signed(self, private_key):
        self.respond(payload={"acknowledged": True})

        asyncio.run(self.client.is_acknowledged(PROVIDER))

        kwargs = self.sent()
        headers = kwargs["headers"]
        assert kwargs["url"] == f"https://broker.test/v1/inference/providers/{PROVIDER}/acknowledged"
        assert headers["BROKER-ACCESS-KEY"] == "key-1"

        message = (
            headers["BROKER-ACCESS-TIMESTAMP"] + "GET" + f"/inference/providers/{PROVIDER}/acknowledged"
        ).encode()
        private_key.public_key().verify(
            base64.b64decode(headers["BROKER-ACCESS-SIGNATURE"]),
            message,
            padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.DIGEST_LENGTH),
            hashes.SHA256(),
        )

    def test_is_acknowledged(self):
        self.respond(payload={"acknowledged": False})
        assert asyncio.run(self.client.is_acknowledged(PROVIDER)) is False

    def test_ledger_detail_parses_big_integers(self):
        self.respond(payload={"ledgerInfo": ["5000000000000000000", "0", "0"], "infers": []})

        detail = asyncio.run(self.client.get_ledger_detail())

        assert detail.total_balance == 5 * 10**18

    def test_malformed_ledger(self):
        self.respond(payload={"ledgerInfo": "oops"})

        with pytest.raises(BrokerAPIError, match="Malformed ledger detail"):
            asyncio.run(self.client.get_ledger_detail())

    def test_transfer_payload(self):
        self.respond(payload={})

        asyncio.run(self.client.transfer_fund(PROVIDER, "inference", 2 * 10**18))

        kwargs = self.sent()
        assert kwargs["method"] == "POST"
        assert kwargs["url"].endswith("/ledger/transfer")
        assert kwargs["json"] == {
            "provider": PROVIDER,
            "serviceType": "inference",
            "amount": "2000000000000000000",
        }

    def test_sub_account(self):
        self.respond(payload={"balance": "1500000000000000000"})

        account = asyncio.run(self.client.get_sub_account(PROVIDER))

        assert account.provider == PROVIDER
        assert account.balance == 15 * 10**17

    def test_missing_sub_account_is_none(self):
        self.respond(404, {"code": "ACCOUNT_NOT_FOUND", "message": "no account"})

        assert asyncio.run(self.client.get_sub_account(PROVIDER)) is None

    def test_metadata_and_headers(self):
        self.respond(payload={"endpoint": "https://p.test/v1/proxy", "model": "m1"})
        metadata = asyncio.run(self.client.get_service_metadata(PROVIDER))
        assert metadata.endpoint == "https://p.test/v1/proxy"

        self.respond(payload={"headers": {"X-Nonce": 7, "Address": "0xabc"}})
        headers = asyncio.run(self.client.get_request_headers(PROVIDER, '[{"role":"user"}]'))

        assert headers == {"X-Nonce": "7", "Address": "0xabc"}
        assert self.sent()["json"] == {"content": '[{"role":"user"}]'}

    def test_process_response(self):
        self.respond(payload={"valid": True})

        asyncio.run(self.client.process_response(PROVIDER, "answer", "r1"))

        assert self.sent()["json"] == {"content": "answer", "chatId": "r1"}

    def test_process_response_rejected(self):
        self.respond(payload={"valid": False})

        with pytest.raises(BrokerAPIError) as excinfo:
            asyncio.run(self.client.process_response(PROVIDER, "answer", "r1"))

        assert excinfo.value.code == "VERIFICATION_REJECTED"

    def test_error_code_is_surfaced(self):
        self.respond(400, {"code": "INSUFFICIENT_FUNDS", "message": "insufficient funds"})

        with pytest.raises(BrokerAPIError) as excinfo:
            asyncio.run(self.client.transfer_fund(PROVIDER, "inference", 1))

        assert excinfo.value.code == "INSUFFICIENT_FUNDS"
        assert excinfo.value.status_code == 400
        assert "insufficient funds" in str(excinfo.value)

    def test_non_json_error_body(self):
        response = http_response(502)
        response._content = b"<html>Bad Gateway</html>"
        self.client.session.request.return_value = response

        with pytest.raises(BrokerAPIError) as excinfo:
            asyncio.run(self.client.get_ledger_detail())

        assert excinfo.value.status_code == 502
        assert excinfo.value.code is None
        assert excinfo.value.response_data == {}

    def test_not_found(self):
        self.respond(404)

        with pytest.raises(BrokerNotFoundError) as excinfo:
            asyncio.run(self.client.get_service_metadata(PROVIDER))

        assert excinfo.value.code == "NOT_FOUND"

    def test_timeout(self):
        self.client.session.request.side_effect = requests.exceptions.ConnectTimeout("slow")

        with pytest.raises(BrokerTimeoutError) as excinfo:
            asyncio.run(self.client.get_ledger_detail())

        assert excinfo.value.code == "TIMEOUT"

    def test_connection_error(self):
        self.client.session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(BrokerAPIError, match="Request failed"):
            asyncio.run(self.client.get_ledger_detail())


class TestCredentials:
    def test_missing_secret(self):
        with pytest.raises(BrokerAuthenticationError, match="not configured"):
            BrokerClient(api_key="k", api_secret="", base_url="https://broker.test")

    def test_invalid_secret(self):
        with pytest.raises(BrokerAuthenticationError, match="Failed to load RSA private key"):
            BrokerClient(api_key="k", api_secret="not a pem", base_url="https://broker.test")

    def test_escaped_newlines(self, pem):
        client = BrokerClient(api_key="k", api_secret=pem.replace("\n", "\\n"), base_url="https://b")
        assert client.private_key is not None
