"""Tests for exchange, network and symbol normalization."""

import pytest

from cryptoconsole.errors import AmbiguousSymbolError, ValidationError
from cryptoconsole.exchanges.normalization import (
    SymbolListing,
    canonical_exchange_name,
    networks_match,
    normalize_network,
    normalize_networks,
    normalize_symbol,
    resolve_symbol,
    split_symbol,
)


class TestCanonicalExchangeName:
    """Tests for exchange identity resolution."""

    def test_aliases(self):
        assert canonical_exchange_name("ascend") == "ascendex"
        assert canonical_exchange_name("bittrue") == "bitrue"
        assert canonical_exchange_name("Gate") == "gateio"
        assert canonical_exchange_name("huobi") == "htx"

    def test_case_and_punctuation_insensitive(self):
        assert canonical_exchange_name("  Gate.IO ") == "gateio"
        assert canonical_exchange_name("Bin-ance") == "binance"

    def test_unknown_name_passes_through_cleaned(self):
        assert canonical_exchange_name("My_Exchange") == "myexchange"

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            canonical_exchange_name("   ")


class TestNormalizeNetwork:
    """Tests for canonical network tokens."""

    def test_parenthetical_alias(self):
        """Test that the parenthetical part of a display name wins."""
        assert normalize_network("TRON(TRC20)") == "TRC20"
        assert normalize_network("Ethereum (ERC20)") == "ERC20"
        assert normalize_network("BNB Smart Chain (BEP20)") == "BSC"

    def test_alias_table(self):
        assert normalize_network("eth") == "ERC20"
        assert normalize_network("TRX") == "TRC20"
        assert normalize_network("Arbitrum One") == "ARBITRUM"
        assert normalize_network("AVAX C-Chain") == "AVAXC"
        assert normalize_network("Polygon") == "MATIC"
        assert normalize_network("Solana") == "SOL"

    def test_asset_qualified_chain(self):
        """Test chain names that embed the asset code."""
        assert normalize_network("trc20usdt", "USDT") == "TRC20"
        assert normalize_network("usdterc20", "USDT") == "ERC20"

    def test_unknown_label_is_cleaned(self):
        assert normalize_network("ton") == "TON"

    def test_blank(self):
        assert normalize_network(None) is None
        assert normalize_network("  ") is None

    def test_networks_match_on_tokens(self):
        assert networks_match("TRON(TRC20)", "trx")
        assert not networks_match("BSC", "TRC20")
        assert not networks_match(None, None)

    def test_normalize_networks_deduplicates(self):
        assert normalize_networks(["TRX", "TRC20", "", None, "ETH"]) == {"TRC20", "ERC20"}


class TestNormalizeSymbol:
    """Tests for normalize_symbol function."""

    def test_unified_format(self):
        assert normalize_symbol("BTCUSDT", "unified") == "BTCUSDT"
        assert normalize_symbol("BTC-USDT", "unified") == "BTCUSDT"
        assert normalize_symbol("BTC/USDT", "unified") == "BTCUSDT"
        assert normalize_symbol("btc_usdt") == "BTCUSDT"

    def test_separated_formats(self):
        assert normalize_symbol("BTC/USDT", "hyphen") == "BTC-USDT"
        assert normalize_symbol("BTC-USDT", "slash") == "BTC/USDT"
        assert normalize_symbol("btc-usdt", "underscore") == "BTC_USDT"

    def test_split_symbol(self):
        assert split_symbol("BTC-USDT") == ("BTC", "USDT")
        assert split_symbol("eth_btc") == ("ETH", "BTC")
        assert split_symbol("BTCUSDT") == ("BTCUSDT", "")


class TestResolveSymbol:
    """Tests for market resolution with redenominated tokens."""

    def test_exact_match_wins(self):
        listings = [
            SymbolListing("1000PEPEUSDT", "1000PEPE", "USDT"),
            SymbolListing("PEPEUSDT", "PEPE", "USDT"),
        ]
        assert resolve_symbol("pepe", "usdt", listings).symbol == "PEPEUSDT"

    def test_single_numeric_prefix_candidate(self):
        listings = [SymbolListing("1000SATSUSDT", "1000SATS", "USDT")]
        assert resolve_symbol("SATS", "USDT", listings).symbol == "1000SATSUSDT"

    def test_ambiguous_candidates_fail_closed(self):
        listings = [
            SymbolListing("1000XUSDT", "1000X", "USDT"),
            SymbolListing("1MXUSDT", "1MX", "USDT"),
            SymbolListing("10XUSDT", "10X", "USDT"),
        ]
        with pytest.raises(AmbiguousSymbolError) as exc_info:
            resolve_symbol("X", "USDT", listings)
        assert exc_info.value.candidates == ["1000XUSDT", "10XUSDT"]
        assert "Did you mean" in str(exc_info.value)

    def test_no_candidate(self):
        with pytest.raises(ValidationError, match="Invalid symbol: FOO/USDT"):
            resolve_symbol("FOO", "USDT", [SymbolListing("BTCUSDT", "BTC", "USDT")])
