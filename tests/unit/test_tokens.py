"""
test_tokens.py - Unit tests for fungible tokens and transfers

Tests:
- create_token_unit factory and validation
- mint / transfer builders
- balance_of, total_supply and metadata queries
"""

import pytest

from splitter import (
    ExecuteResult, OriginType, UnitNotRegistered,
    create_token_unit, mint, transfer, balance_of, token_total_supply,
    SYSTEM_WALLET, NATIVE_ASSET, UNIT_TYPE_TOKEN, UNIT_TYPE_PAYMENT_SPLITTER,
)
from splitter.units.token import name, symbol, decimals

from tests.fake_view import FakeView
from tests.helpers import OWNER, PAYER, NON_PAYEE, SPLITTER, TOKEN


class TestCreateTokenUnit:

    def test_create(self):
        unit = create_token_unit("WBTC", "WBTC Token", decimals=8)
        assert unit.symbol == "WBTC"
        assert unit.unit_type == UNIT_TYPE_TOKEN
        assert unit.decimals == 8
        assert unit.min_balance == 0
        assert unit.state == {'name': "WBTC Token", 'symbol': "WBTC", 'decimals': 8}

    def test_default_decimals(self):
        assert create_token_unit("MT", "MyToken").decimals == 18

    @pytest.mark.parametrize("sym,nm,dec", [
        ("", "Token", 18),
        ("T", " ", 18),
        ("T", "Token", -1),
    ])
    def test_invalid_arguments(self, sym, nm, dec):
        with pytest.raises(ValueError):
            create_token_unit(sym, nm, dec)


class TestMint:

    def test_mint_builds_system_move(self, token_ledger):
        tx = mint(token_ledger, TOKEN, OWNER, 100)
        assert len(tx.moves) == 1
        move = tx.moves[0]
        assert (move.source, move.dest, move.quantity, move.unit_symbol) == (SYSTEM_WALLET, OWNER, 100, TOKEN)
        assert tx.origin.origin_type == OriginType.SYSTEM
        assert tx.origin.event_type == "MINT"

    def test_mint_increases_supply(self, token_ledger):
        assert token_total_supply(token_ledger, TOKEN) == 0
        token_ledger.execute(mint(token_ledger, TOKEN, OWNER, 100))
        token_ledger.execute(mint(token_ledger, TOKEN, SPLITTER, 100))
        assert token_total_supply(token_ledger, TOKEN) == 200
        assert token_ledger.total_supply(TOKEN) == 0

    def test_repeated_identical_mints_apply(self, token_ledger):
        assert token_ledger.execute(mint(token_ledger, TOKEN, OWNER, 5)) == ExecuteResult.APPLIED
        assert token_ledger.execute(mint(token_ledger, TOKEN, OWNER, 5)) == ExecuteResult.APPLIED
        assert balance_of(token_ledger, TOKEN, OWNER) == 10

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True])
    def test_invalid_amount(self, token_ledger, amount):
        with pytest.raises(ValueError):
            mint(token_ledger, TOKEN, OWNER, amount)

    def test_cannot_mint_splitter_unit(self, splitter_ledger):
        with pytest.raises(ValueError, match="not a fungible asset"):
            mint(splitter_ledger, SPLITTER, OWNER, 1)


class TestTransfer:

    def test_transfer_token(self, token_ledger):
        token_ledger.execute(mint(token_ledger, TOKEN, OWNER, 100))
        result = token_ledger.execute(transfer(token_ledger, TOKEN, OWNER, PAYER, 40))
        assert result == ExecuteResult.APPLIED
        assert balance_of(token_ledger, TOKEN, OWNER) == 60
        assert balance_of(token_ledger, TOKEN, PAYER) == 40

    def test_transfer_origin(self, chain):
        tx = transfer(chain, NATIVE_ASSET, OWNER, PAYER, 1)
        assert tx.origin.origin_type == OriginType.USER_ACTION
        assert tx.origin.source_id == OWNER
        assert tx.origin.event_type == "TRANSFER"
        assert tx.moves[0].contract_id == f"transfer_{OWNER}_0"

    def test_transfer_more_than_balance_rejected(self, token_ledger):
        token_ledger.execute(mint(token_ledger, TOKEN, OWNER, 10))
        result = token_ledger.execute(transfer(token_ledger, TOKEN, OWNER, PAYER, 11))
        assert result == ExecuteResult.REJECTED
        assert balance_of(token_ledger, TOKEN, OWNER) == 10

    def test_transfer_to_self_rejected(self, chain):
        with pytest.raises(ValueError, match="different"):
            transfer(chain, NATIVE_ASSET, OWNER, OWNER, 1)

    def test_transfer_unknown_asset(self, chain):
        with pytest.raises(UnitNotRegistered):
            transfer(chain, "DOGE", OWNER, PAYER, 1)


class TestQueries:

    def test_balance_of_unknown_wallet_is_zero(self, token_ledger):
        assert balance_of(token_ledger, TOKEN, "stranger") == 0

    def test_balance_of_registered_wallet_without_funds(self, token_ledger):
        assert balance_of(token_ledger, TOKEN, NON_PAYEE) == 0

    def test_metadata(self, token_ledger):
        assert name(token_ledger, TOKEN) == "WBTC Token"
        assert symbol(token_ledger, TOKEN) == TOKEN
        assert decimals(token_ledger, TOKEN) == 8

    def test_native_currency_metadata(self, chain):
        assert name(chain, NATIVE_ASSET) == "Ether"
        assert decimals(chain, NATIVE_ASSET) == 18

    def test_total_supply_via_fake_view(self):
        unit = create_token_unit(TOKEN, "WBTC Token", decimals=8)
        view = FakeView(
            balances={SYSTEM_WALLET: {TOKEN: -300}, OWNER: {TOKEN: 300}},
            units={TOKEN: unit},
        )
        assert token_total_supply(view, TOKEN) == 300

    def test_total_supply_rejects_splitter(self, splitter_ledger):
        assert splitter_ledger.get_unit(SPLITTER).unit_type == UNIT_TYPE_PAYMENT_SPLITTER
        with pytest.raises(ValueError):
            token_total_supply(splitter_ledger, SPLITTER)
