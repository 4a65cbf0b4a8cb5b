"""
Unit tests for the scan orchestrator.

Tests follow the Given/When/Then pattern for clarity.
"""

import re
from decimal import Decimal

import responses

from garbage_collector.lib.batch_aggregator import BatchAggregator
from garbage_collector.lib.errors import PriceLookupError, TokenListError
from garbage_collector.lib.formatters import fiat_value
from garbage_collector.lib.models import NATIVE_TOKEN_ADDRESS, ZERO_ADDRESS, TokenDescriptor
from garbage_collector.lib.orchestrator import ScanOrchestrator
from garbage_collector.lib.prices import PriceClient

from conftest import MULTICALL3_ADDRESS


HEALTHY_RPC = "https://healthy.example.com/rpc"
SICK_RPC = "https://sick.example.com/rpc"
SLOW_RPC = "https://slow.example.com/rpc"
BASE_RPC = "https://base.example.com/rpc"


class FakeTokenProvider:
    """Serves fixed token lists; networks mapped to an exception raise it."""

    def __init__(self, lists):
        self.lists = lists
        self.requested = []

    def get_tokens(self, network):
        self.requested.append(network.name)
        tokens = self.lists[network.name]
        if isinstance(tokens, Exception):
            raise tokens
        return list(tokens)


class FakePriceClient:
    def __init__(self, prices=None, error=None):
        self.prices = prices or {}
        self.error = error
        self.calls = []

    def enrich(self, network_name, records):
        self.calls.append((network_name, [r.token_address for r in records]))
        if self.error is not None:
            raise self.error
        priced = 0
        for record in records:
            if record.token_address in self.prices:
                record.set_fiat_price(self.prices[record.token_address])
                priced += 1
        return priced


def make_orchestrator(node, token_lists, price_client=None, **kwargs):
    aggregator = BatchAggregator(client_factory=node.factory, retry_delay=0, batch_delay=0, **kwargs)
    return ScanOrchestrator(
        aggregator=aggregator,
        token_provider=FakeTokenProvider(token_lists),
        price_client=price_client or FakePriceClient(),
    )


class TestScanAllNetworks:
    """Tests for scan_all_networks."""

    def test_merges_results_keyed_by_network(
        self, fake_node, make_network, make_tokens, sample_wallet_address
    ):
        """
        Given two networks each holding one token
        When scanning all networks
        Then both appear in the result under their names
        """
        # Given
        eth = make_network("Ethereum", [HEALTHY_RPC])
        base = make_network("Base", [BASE_RPC], chain_id=8453)
        eth_tokens = make_tokens(2)
        base_tokens = make_tokens(2, offset=100)
        fake_node.set_balance(HEALTHY_RPC, eth_tokens[0].address, 10)
        fake_node.set_balance(BASE_RPC, base_tokens[1].address, 20)
        orchestrator = make_orchestrator(
            fake_node, {"Ethereum": eth_tokens, "Base": base_tokens}
        )

        # When
        result = orchestrator.scan_all_networks([eth, base], sample_wallet_address)

        # Then
        balances = result.as_dict()
        assert sorted(balances) == ["Base", "Ethereum"]
        assert balances["Ethereum"][0].raw_balance == 10
        assert balances["Base"][0].raw_balance == 20

    def test_appends_native_sentinel_to_token_list(
        self, fake_node, make_network, make_tokens, sample_wallet_address
    ):
        # Given
        network = make_network("Ethereum", [HEALTHY_RPC], currency="ETH")
        fake_node.set_balance(HEALTHY_RPC, MULTICALL3_ADDRESS, 10**18)
        orchestrator = make_orchestrator(fake_node, {"Ethereum": make_tokens(1)})

        # When
        result = orchestrator.scan_all_networks([network], sample_wallet_address)

        # Then
        submitted = fake_node.submissions[0][1]
        assert len(submitted) == 2
        assert submitted[-1].target == MULTICALL3_ADDRESS
        record = result.as_dict()["Ethereum"][0]
        assert record.token_address == NATIVE_TOKEN_ADDRESS
        assert record.token_symbol == "ETH"
        assert record.decimals == 18

    def test_failing_network_does_not_affect_healthy_sibling(
        self, fake_node, make_network, make_tokens, sample_wallet_address
    ):
        """
        Given a single-endpoint network failing twice before it would succeed,
        and a healthy sibling network
        When scanning all networks
        Then only the healthy network is in the result
        """
        # Given
        sick = make_network("Sick", [SICK_RPC], chain_id=2)
        healthy = make_network("Healthy", [HEALTHY_RPC], chain_id=3)
        sick_tokens = make_tokens(1)
        healthy_tokens = make_tokens(1, offset=50)
        fake_node.fail(SICK_RPC, 2)
        fake_node.set_balance(SICK_RPC, sick_tokens[0].address, 99)
        fake_node.set_balance(HEALTHY_RPC, healthy_tokens[0].address, 5)
        orchestrator = make_orchestrator(fake_node, {"Sick": sick_tokens, "Healthy": healthy_tokens})

        # When
        result = orchestrator.scan_all_networks([sick, healthy], sample_wallet_address)

        # Then
        assert result.networks() == ["Healthy"]
        assert fake_node.endpoints_used().count(SICK_RPC) == 2

    def test_networks_without_balances_are_not_published(
        self, fake_node, make_network, make_tokens, sample_wallet_address
    ):
        # Given
        network = make_network("Ethereum", [HEALTHY_RPC])
        price_client = FakePriceClient()
        orchestrator = make_orchestrator(fake_node, {"Ethereum": make_tokens(3)}, price_client)

        # When
        result = orchestrator.scan_all_networks([network], sample_wallet_address)

        # Then
        assert len(result) == 0
        assert price_client.calls == []

    def test_skips_network_without_batch_call_contract_before_spawning(
        self, fake_node, make_network, make_tokens, sample_wallet_address, capsys
    ):
        """
        Given a network with a zero batch-call address
        When scanning all networks
        Then its token list is never requested and the skip is logged
        """
        # Given
        broken = make_network("Broken", [SICK_RPC], batch_call_address=ZERO_ADDRESS)
        healthy = make_network("Healthy", [HEALTHY_RPC], chain_id=3)
        tokens = make_tokens(1)
        fake_node.set_balance(HEALTHY_RPC, tokens[0].address, 1)
        token_lists = {"Broken": make_tokens(1), "Healthy": tokens}
        orchestrator = make_orchestrator(fake_node, token_lists)

        # When
        result = orchestrator.scan_all_networks([broken, healthy], sample_wallet_address)

        # Then
        assert orchestrator.token_provider.requested == ["Healthy"]
        assert result.networks() == ["Healthy"]
        assert "[Broken] ERROR" in capsys.readouterr().err

    def test_skips_network_when_token_list_unavailable(
        self, fake_node, make_network, make_tokens, sample_wallet_address
    ):
        # Given
        missing = make_network("Missing", [SICK_RPC], chain_id=2)
        healthy = make_network("Healthy", [HEALTHY_RPC], chain_id=3)
        tokens = make_tokens(1)
        fake_node.set_balance(HEALTHY_RPC, tokens[0].address, 1)
        orchestrator = make_orchestrator(
            fake_node, {"Missing": TokenListError("Token data is null"), "Healthy": tokens}
        )

        # When
        result = orchestrator.scan_all_networks([missing, healthy], sample_wallet_address)

        # Then
        assert result.networks() == ["Healthy"]
        assert SICK_RPC not in fake_node.endpoints_used()

    def test_unexpected_task_failure_is_isolated(
        self, fake_node, make_network, make_tokens, sample_wallet_address, capsys
    ):
        # Given
        crashing = make_network("Crashing", [SICK_RPC], chain_id=2)
        healthy = make_network("Healthy", [HEALTHY_RPC], chain_id=3)
        tokens = make_tokens(1)
        fake_node.set_balance(HEALTHY_RPC, tokens[0].address, 1)
        orchestrator = make_orchestrator(
            fake_node, {"Crashing": RuntimeError("disk on fire"), "Healthy": tokens}
        )

        # When
        result = orchestrator.scan_all_networks([crashing, healthy], sample_wallet_address)

        # Then
        assert result.networks() == ["Healthy"]
        assert "unexpected failure" in capsys.readouterr().err

    def test_price_failure_keeps_balances_unpriced(
        self, fake_node, make_network, make_tokens, sample_wallet_address
    ):
        # Given
        network = make_network("Ethereum", [HEALTHY_RPC])
        tokens = make_tokens(1)
        fake_node.set_balance(HEALTHY_RPC, tokens[0].address, 8)
        price_client = FakePriceClient(error=PriceLookupError("Coins data is null"))
        orchestrator = make_orchestrator(fake_node, {"Ethereum": tokens}, price_client)

        # When
        result = orchestrator.scan_all_networks([network], sample_wallet_address)

        # Then
        record = result.as_dict()["Ethereum"][0]
        assert record.raw_balance == 8
        assert record.fiat_price == 0

    def test_timeout_cancels_slow_network_without_publishing(
        self, fake_node, make_network, make_tokens, sample_wallet_address
    ):
        """
        Given a slow network needing two batches and a fast network
        When scanning with a deadline shorter than the slow network's first batch
        Then the slow network is cancelled and only the fast one is reported
        """
        # Given
        slow = make_network("Slow", [SLOW_RPC], chain_id=2)
        fast = make_network("Fast", [HEALTHY_RPC], chain_id=3)
        slow_tokens = make_tokens(1)
        fast_tokens = make_tokens(1, offset=10)
        fake_node.delay(SLOW_RPC, 0.5)
        fake_node.set_balance(SLOW_RPC, slow_tokens[0].address, 1)
        fake_node.set_balance(HEALTHY_RPC, fast_tokens[0].address, 1)
        orchestrator = make_orchestrator(
            fake_node, {"Slow": slow_tokens, "Fast": fast_tokens}, batch_size=1
        )

        # When
        result = orchestrator.scan_all_networks([slow, fast], sample_wallet_address, timeout=0.1)

        # Then
        assert result.networks() == ["Fast"]
        assert fake_node.endpoints_used().count(SLOW_RPC) == 1

    def test_no_scannable_networks_returns_empty_result(self, fake_node, sample_wallet_address):
        orchestrator = make_orchestrator(fake_node, {})

        assert len(orchestrator.scan_all_networks([], sample_wallet_address)) == 0


class TestEndToEndPricing:
    @responses.activate
    def test_reports_only_held_token_with_fiat_value(
        self, fake_node, make_network, sample_wallet_address
    ):
        """
        Given a wallet holding 0 of token X and 0.5 of token Y priced at $2.00
        When scanning with the DefiLlama price client
        Then only Y is reported and its value is 1.00
        """
        # Given
        network = make_network("Ethereum", [HEALTHY_RPC])
        token_x = TokenDescriptor("0x" + "1" * 40, "Token X", "X", 18)
        token_y = TokenDescriptor("0x" + "ab" * 20, "Token Y", "Y", 18)
        fake_node.set_balance(HEALTHY_RPC, token_x.address, 0)
        fake_node.set_balance(HEALTHY_RPC, token_y.address, 5 * 10**17)
        responses.add(
            responses.GET,
            re.compile(r"https://coins\.llama\.fi/prices/current/.*"),
            json={"coins": {"ethereum:0x" + "AB" * 20: {"price": 2.0}}},
            status=200,
        )
        orchestrator = make_orchestrator(
            fake_node, {"Ethereum": [token_x, token_y]}, price_client=PriceClient()
        )

        # When
        result = orchestrator.scan_all_networks([network], sample_wallet_address)

        # Then
        records = result.as_dict()["Ethereum"]
        assert [r.token_symbol for r in records] == ["Y"]
        assert records[0].fiat_price == 2.0
        assert fiat_value(records[0]) == Decimal("1.00")
        assert f"ethereum:{token_y.address}" in responses.calls[0].request.url
