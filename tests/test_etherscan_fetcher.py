"""
Tests for core/etherscan_fetcher.py: URL parsing, envelope validation, 502 retry.
"""

import unittest
from unittest.mock import MagicMock, patch

import pytest
import requests
from rich.console import Console

from core.errors import SourceFetchError, SourceUnavailable, TransientFetchFailure
from core.etherscan_fetcher import EtherscanFetcher

from conftest import SAMPLE_SOLIDITY, VALID_ADDRESS, explorer_response


def fake_response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code} error")
    return response


@pytest.fixture
def fetcher(config_manager):
    return EtherscanFetcher(config_manager, console=Console(quiet=True))


class TestAddressParsing:

    def test_bare_address(self, fetcher):
        assert fetcher.parse_explorer_url(VALID_ADDRESS) == (None, VALID_ADDRESS)

    def test_explorer_url(self, fetcher):
        url = f"https://etherscan.io/address/{VALID_ADDRESS}#code"
        assert fetcher.parse_explorer_url(url) == ("ethereum", VALID_ADDRESS)

    def test_url_without_scheme(self, fetcher):
        assert fetcher.parse_explorer_url(f"www.basescan.org/address/{VALID_ADDRESS}") == ("base", VALID_ADDRESS)

    def test_unknown_domain_keeps_current_network(self, fetcher):
        assert fetcher.parse_explorer_url(f"https://example.com/address/{VALID_ADDRESS}") == (None, VALID_ADDRESS)

    def test_garbage(self, fetcher):
        assert fetcher.parse_explorer_url("not-an-address") == (None, None)

    def test_address_validation(self, fetcher):
        assert fetcher.is_etherscan_address(VALID_ADDRESS)
        assert not fetcher.is_etherscan_address("0x1234")
        assert not fetcher.is_etherscan_address("0x" + "g" * 40)


class TestNetworks:

    def test_default_network_from_config(self, fetcher):
        assert fetcher.current_network == "base"
        assert fetcher.base_url == EtherscanFetcher.SUPPORTED_NETWORKS["base"]["api_url"]

    def test_set_network(self, fetcher):
        assert fetcher.set_network("polygon")
        assert fetcher.build_params(VALID_ADDRESS)["chainid"] == 137

    def test_unsupported_network(self, fetcher):
        assert not fetcher.set_network("solana")
        assert fetcher.current_network == "base"

    def test_build_params(self, fetcher):
        assert fetcher.build_params(VALID_ADDRESS) == {
            "chainid": 8453,
            "module": "contract",
            "action": "getsourcecode",
            "address": VALID_ADDRESS,
            "apikey": "test-fake-etherscan-key",
        }


class TestParseEnvelope(unittest.TestCase):

    def setUp(self):
        self.fetcher = EtherscanFetcher(MagicMock(), console=Console(quiet=True))

    def test_success(self):
        envelope = self.fetcher.parse_envelope(explorer_response(SAMPLE_SOLIDITY))
        self.assertEqual(envelope.status, "1")
        self.assertEqual(envelope.source_code, SAMPLE_SOLIDITY)
        self.assertEqual(envelope.compiler_version, "v0.8.20+commit.a1b79de6")
        self.assertEqual(envelope.contract_name, "Vault")

    def test_failure_status(self):
        body = {"status": "0", "message": "NOTOK", "result": "Invalid API Key"}
        with self.assertRaises(SourceUnavailable) as ctx:
            self.fetcher.parse_envelope(body)
        self.assertIn("Invalid API Key", str(ctx.exception))

    def test_empty_source_code(self):
        with self.assertRaises(SourceUnavailable):
            self.fetcher.parse_envelope(explorer_response(""))

    def test_empty_result(self):
        with self.assertRaises(SourceUnavailable):
            self.fetcher.parse_envelope({"status": "1", "message": "OK", "result": []})


class TestFetchContractSource:

    def test_success(self, fetcher):
        with patch("core.etherscan_fetcher.requests.get") as mock_get:
            mock_get.return_value = fake_response(body=explorer_response(SAMPLE_SOLIDITY))
            envelope = fetcher.fetch_contract_source(VALID_ADDRESS)

        assert envelope.source_code == SAMPLE_SOLIDITY
        args, kwargs = mock_get.call_args
        assert args[0] == fetcher.base_url
        assert kwargs["params"]["address"] == VALID_ADDRESS
        assert kwargs["timeout"] == 30

    def test_502_retried_once(self, fetcher):
        with patch("core.etherscan_fetcher.requests.get") as mock_get:
            mock_get.side_effect = [fake_response(502), fake_response(body=explorer_response(SAMPLE_SOLIDITY))]
            envelope = fetcher.fetch_contract_source(VALID_ADDRESS)

        assert mock_get.call_count == 2
        assert envelope.source_code == SAMPLE_SOLIDITY

    def test_repeated_502_fails(self, fetcher):
        with patch("core.etherscan_fetcher.requests.get") as mock_get:
            mock_get.return_value = fake_response(502)
            with pytest.raises(TransientFetchFailure) as exc:
                fetcher.fetch_contract_source(VALID_ADDRESS)

        assert mock_get.call_count == 2
        assert exc.value.status_code == 502

    def test_other_http_errors_not_retried(self, fetcher):
        with patch("core.etherscan_fetcher.requests.get") as mock_get:
            mock_get.return_value = fake_response(500)
            with pytest.raises(SourceFetchError) as exc:
                fetcher.fetch_contract_source(VALID_ADDRESS)

        assert mock_get.call_count == 1
        assert not isinstance(exc.value, TransientFetchFailure)

    def test_network_error(self, fetcher):
        with patch("core.etherscan_fetcher.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
            with pytest.raises(SourceFetchError):
                fetcher.fetch_contract_source(VALID_ADDRESS)

    def test_invalid_json(self, fetcher):
        response = fake_response()
        response.json.side_effect = ValueError("Expecting value")
        with patch("core.etherscan_fetcher.requests.get", return_value=response):
            with pytest.raises(SourceFetchError):
                fetcher.fetch_contract_source(VALID_ADDRESS)

    def test_invalid_address_makes_no_request(self, fetcher):
        with patch("core.etherscan_fetcher.requests.get") as mock_get:
            with pytest.raises(SourceUnavailable):
                fetcher.fetch_contract_source("0xnope")
        mock_get.assert_not_called()

    def test_missing_api_key(self, fetcher):
        fetcher.api_key = ""
        with patch("core.etherscan_fetcher.requests.get") as mock_get:
            with pytest.raises(SourceUnavailable):
                fetcher.fetch_contract_source(VALID_ADDRESS)
        mock_get.assert_not_called()
