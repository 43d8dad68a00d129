"""
helpers.py - Shared constants and helpers for splitter tests

The accounts and shares mirror the original deployment: three payees with
shares [20, 10, 70], funded by an owner account.
"""

from datetime import datetime
from typing import Dict

from splitter import (
    Ledger, ExecuteResult,
    native_currency, parse_ether,
    mint, transfer, total_released,
    NATIVE_ASSET,
)


OWNER = "owner"
PAYER = "payer1"
NON_PAYEE = "nonpayee1"
SPLITTER = "splitter"
PAYEES = ["payee1", "payee2", "payee3"]
SHARES = [20, 10, 70]
TOKEN = "WBTC"

START = datetime(2025, 1, 1)


def new_chain(name: str = "test") -> Ledger:
    """Ledger with ETH registered and owner/payer funded with 100 ETH each."""
    ledger = Ledger(name, START, verbose=False, test_mode=True)
    ledger.register_unit(native_currency())
    for signer in (OWNER, PAYER, NON_PAYEE):
        ledger.register_wallet(signer)
    for signer in (OWNER, PAYER):
        assert ledger.execute(mint(ledger, NATIVE_ASSET, signer, parse_ether("100"))) == ExecuteResult.APPLIED
    return ledger


def fund(ledger: Ledger, amount: int, asset: str = NATIVE_ASSET, sender: str = OWNER, to: str = SPLITTER) -> None:
    """Send `amount` of `asset` to the splitter (or `to`) and require success."""
    result = ledger.execute(transfer(ledger, asset, sender, to, amount))
    assert result == ExecuteResult.APPLIED


def splitter_holdings(ledger: Ledger, asset: str = NATIVE_ASSET) -> Dict[str, int]:
    """Balance, total released and their sum for the splitter in `asset`."""
    balance = ledger.get_balance(SPLITTER, asset)
    paid = total_released(ledger, SPLITTER, asset)
    return {'balance': balance, 'released': paid, 'received': balance + paid}
