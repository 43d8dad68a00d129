"""
token.py - Fungible Tokens and Plain Transfers

This module provides the fungible-asset surface the splitter pays out of:
1. create_token_unit() - Factory for ERC20-style token units
2. mint() - Issue new supply from the system wallet (test helper)
3. transfer() - Signed transfer of any fungible asset, native currency included
4. balance_of() / total_supply() / name() / symbol() / decimals() - Token queries

A token keeps no balances of its own; balances live in the ledger like
every other unit. The token's state only carries its metadata.

Transfers are unique per sender: the sender's nonce is embedded in the
move's contract_id, so paying the same amount twice is two transactions
rather than one idempotent intent.

All functions take LedgerView (read-only) and return immutable results.
"""

from __future__ import annotations

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_TOKEN, FUNGIBLE_UNIT_TYPES, DEFAULT_DECIMALS,
    build_transaction, _freeze_state,
)


def create_token_unit(symbol: str, name: str, decimals: int = DEFAULT_DECIMALS) -> Unit:
    """
    Create a fungible token unit.

    Args:
        symbol: Token identifier, also its contract address in the ledger
                (e.g., "WBTC")
        name: Human-readable name (e.g., "Wrapped BTC")
        decimals: Display decimals (default: 18)

    Returns:
        Unit with a non-negative balance floor and token metadata in its state.

    Example:
        ledger.register_unit(create_token_unit("WBTC", "Wrapped BTC", decimals=8))
        ledger.execute(mint(ledger, "WBTC", splitter, 100))
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if not name or not name.strip():
        raise ValueError("name cannot be empty")
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")

    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        decimals=decimals,
        _frozen_state=_freeze_state({
            'name': name,
            'symbol': symbol,
            'decimals': decimals,
        }),
    )


def _require_fungible(view: LedgerView, asset: str) -> None:
    unit = view.get_unit(asset)
    if unit.unit_type not in FUNGIBLE_UNIT_TYPES:
        raise ValueError(f"{asset} is not a fungible asset ({unit.unit_type})")


def _require_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount)}")
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")


def mint(view: LedgerView, asset: str, to: str, amount: int) -> PendingTransaction:
    """
    Issue `amount` new units of `asset` to `to`.

    The system wallet is debited, so the ledger-wide sum stays at zero and
    total_supply() grows by `amount`.

    Raises:
        ValueError: If amount is not a positive int or the asset is not fungible
    """
    _require_amount(amount)
    _require_fungible(view, asset)
    nonce = view.get_nonce(SYSTEM_WALLET)
    moves = [Move(amount, asset, SYSTEM_WALLET, to, f'mint_{asset}_{nonce}')]
    origin = TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, asset, "MINT")
    return build_transaction(view, moves, origin=origin)


def transfer(view: LedgerView, asset: str, sender: str, to: str, amount: int) -> PendingTransaction:
    """
    Transfer `amount` of `asset` from `sender` to `to`.

    Works for tokens and for the native currency alike. Sending funds to a
    payment splitter's address is how the splitter gets funded.

    Raises:
        ValueError: If amount is not a positive int, sender == to, or the
                    asset is not fungible

    Example:
        ledger.execute(transfer(ledger, "ETH", owner, splitter, parse_ether("1")))
    """
    _require_amount(amount)
    _require_fungible(view, asset)
    if sender == to:
        raise ValueError("sender and recipient must be different")
    nonce = view.get_nonce(sender)
    moves = [Move(amount, asset, sender, to, f'transfer_{sender}_{nonce}')]
    origin = TransactionOrigin(OriginType.USER_ACTION, sender, asset, "TRANSFER")
    return build_transaction(view, moves, origin=origin)


def balance_of(view: LedgerView, asset: str, account: str) -> int:
    """Balance of `account` in `asset`; 0 for unknown wallets."""
    if account not in view.list_wallets():
        return 0
    return view.get_balance(account, asset)


def total_supply(view: LedgerView, asset: str) -> int:
    """Outstanding supply: everything issued by the system wallet and not redeemed."""
    _require_fungible(view, asset)
    return -view.get_balance(SYSTEM_WALLET, asset)


def name(view: LedgerView, asset: str) -> str:
    return view.get_unit_state(asset)['name']


def symbol(view: LedgerView, asset: str) -> str:
    return view.get_unit_state(asset)['symbol']


def decimals(view: LedgerView, asset: str) -> int:
    return view.get_unit_state(asset)['decimals']
