"""
payment_splitter.py - Proportional Payment Splitter

This module provides the payment splitter contract:
1. create_payment_splitter() - Factory for the splitter unit (payee registry)
2. deploy_payment_splitter() - Register the splitter and its wallets on a ledger
3. Queries - total_shares, payee, shares, released, total_released,
   total_received, releasable
4. compute_release() / release() - Pay one payee what is owed
5. compute_release_all() - Pay every payee in one atomic transaction
6. payment_splitter_contract() - SmartContract for LifecycleEngine sweeps
7. payments_released() / payments_received() - Event views over the log

A splitter has an address that is both its unit symbol (where its state
lives) and its wallet (where its funds are held). Funds arrive by ordinary
transfers into the wallet; there is no deposit entrypoint. Accounting is
kept per asset:

    total_received(asset) = balance(asset) + total_released(asset)
    entitled              = total_received * shares[payee] // total_shares
    releasable            = entitled - released[asset][payee]

total_received is derived on every call, so funds that arrive by any route
(including set_balance in tests) are picked up. Rounding dust stays in the
wallet and becomes payable as the received total grows.

State:
    address: the splitter's address
    native_asset: symbol used when no asset is given
    payees: ordered list of payee addresses
    shares: {payee: weight}
    total_shares: sum of weights
    released: {asset: {payee: amount}}
    total_released: {asset: amount}

Releases carry their accounting update as a state change in the same
transaction as the payment. The ledger commits both before running the
payee's receive hook, so a re-entrant release sees the payee already paid
and fails with NothingDue; a refused payment rolls both back.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange, UnitState,
    TransactionOrigin, OriginType, ExecuteResult,
    SYSTEM_WALLET, ZERO_ADDRESS, NATIVE_ASSET,
    UNIT_TYPE_NATIVE, UNIT_TYPE_PAYMENT_SPLITTER, FUNGIBLE_UNIT_TYPES,
    LedgerError, UnitNotRegistered, TransferFailure,
    ConstructionError, LengthMismatch, NoPayees, DuplicatePayee, ZeroAddress, ZeroShare,
    NotAPayee, NothingDue, IndexOutOfRange,
    build_transaction, empty_pending_transaction, non_transferable_rule, _freeze_state,
)
from ..ledger import Ledger


EVENT_PAYEES_ADDED = "PAYEES_ADDED"
EVENT_PAYMENT_RELEASED = "PAYMENT_RELEASED"
EVENT_ERC20_PAYMENT_RELEASED = "ERC20_PAYMENT_RELEASED"
EVENT_DISTRIBUTION = "DISTRIBUTION"


# ============================================================================
# EVENT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PaymentReleased:
    """A payout from a splitter to one payee, read back from the log."""
    asset: str
    payee: str
    amount: int
    exec_id: str
    execution_time: datetime


@dataclass(frozen=True, slots=True)
class PaymentReceived:
    """A transfer into a splitter's wallet, read back from the log."""
    asset: str
    sender: str
    amount: int
    exec_id: str
    execution_time: datetime


# ============================================================================
# CONSTRUCTION
# ============================================================================

def _is_null_address(address) -> bool:
    # The system wallet issues supply and is exempt from balance checks
    return (not isinstance(address, str) or not address.strip()
            or address in (ZERO_ADDRESS, SYSTEM_WALLET))


def create_payment_splitter(
    address: str,
    payees: Sequence[str],
    shares: Sequence[int],
    native_asset: str = NATIVE_ASSET,
    name: Optional[str] = None,
) -> Unit:
    """
    Create a payment splitter unit.

    Args:
        address: The splitter's address (unit symbol and holding wallet)
        payees: Ordered, distinct, non-zero payee addresses
        shares: Positive integer weights, parallel to payees
        native_asset: Asset released when no asset is named (default: "ETH")
        name: Human-readable name (default: "Payment Splitter <address>")

    Returns:
        Unit whose state is the immutable payee registry plus empty accounting.
        The unit itself cannot be held or moved.

    Raises:
        LengthMismatch: payees and shares differ in length
        NoPayees: payees is empty
        ZeroAddress: the splitter or a payee address is empty, the zero address
            or the system wallet
        ZeroShare: a share is not a positive integer
        DuplicatePayee: an address appears twice
        ConstructionError: a payee is the splitter itself

    Example:
        unit = create_payment_splitter("splitter", ["alice", "bob"], [20, 80])
    """
    payees = list(payees)
    shares = list(shares)

    if _is_null_address(address):
        raise ZeroAddress("splitter address is the zero address")
    if len(payees) != len(shares):
        raise LengthMismatch(
            f"payees and shares length mismatch: {len(payees)} != {len(shares)}"
        )
    if not payees:
        raise NoPayees("no payees")

    share_map: Dict[str, int] = {}
    for account, weight in zip(payees, shares):
        if _is_null_address(account):
            raise ZeroAddress("account is the zero address")
        if isinstance(weight, bool) or not isinstance(weight, int) or weight <= 0:
            raise ZeroShare(f"shares must be positive integers, got {weight!r} for {account}")
        if account in share_map:
            raise DuplicatePayee(f"account {account} already has shares")
        if account == address:
            raise ConstructionError(f"splitter {address} cannot be its own payee")
        share_map[account] = weight

    return Unit(
        symbol=address,
        name=name or f"Payment Splitter {address}",
        unit_type=UNIT_TYPE_PAYMENT_SPLITTER,
        max_balance=0,
        transfer_rule=non_transferable_rule,
        _frozen_state=_freeze_state({
            'address': address,
            'native_asset': native_asset,
            'payees': payees,
            'shares': share_map,
            'total_shares': sum(shares),
            'released': {},
            'total_released': {},
        }),
    )


def deploy_payment_splitter(
    ledger: Ledger,
    address: str,
    payees: Sequence[str],
    shares: Sequence[int],
    native_asset: str = NATIVE_ASSET,
    deployer: str = SYSTEM_WALLET,
) -> str:
    """
    Deploy a payment splitter on a ledger.

    Validates the payee registry first, so malformed input leaves the ledger
    untouched. Then registers the holding wallet (unless funds were already
    sent to the address) and any unregistered payee wallets, and executes a
    deployment transaction that creates the splitter unit. The deployment is
    part of the transaction log and is reproduced by replay().

    Returns:
        The splitter's address

    Raises:
        ConstructionError: Malformed payees/shares (see create_payment_splitter)
        UnitNotRegistered: native_asset is not registered
        ValueError: native_asset is not fungible, or address is already a
            registered unit
        LedgerError: The deployment transaction was rejected
    """
    unit = create_payment_splitter(address, payees, shares, native_asset)
    if native_asset not in ledger.units:
        raise UnitNotRegistered(f"Unit {native_asset} not registered")
    if ledger.units[native_asset].unit_type not in FUNGIBLE_UNIT_TYPES:
        raise ValueError(
            f"{native_asset} is not a fungible asset ({ledger.units[native_asset].unit_type})"
        )
    if address in ledger.units:
        raise ValueError(f"Unit {address} already registered")

    if not ledger.is_registered(address):
        ledger.register_wallet(address)
    for account in unit.state['payees']:
        if not ledger.is_registered(account):
            ledger.register_wallet(account)

    origin = TransactionOrigin(OriginType.SYSTEM, deployer, address, EVENT_PAYEES_ADDED)
    pending = build_transaction(ledger, [], origin=origin, units_to_create=(unit,))
    if ledger.execute(pending) != ExecuteResult.APPLIED:
        raise LedgerError(f"deployment of {address} rejected")
    return address


# ============================================================================
# QUERIES
# ============================================================================

def _splitter_state(view: LedgerView, splitter: str) -> UnitState:
    unit = view.get_unit(splitter)
    if unit.unit_type != UNIT_TYPE_PAYMENT_SPLITTER:
        raise ValueError(f"{splitter} is not a payment splitter ({unit.unit_type})")
    return view.get_unit_state(splitter)


def _resolve_asset(state: UnitState, asset: Optional[str]) -> str:
    return state['native_asset'] if asset is None else asset


def _pending_payment(state: UnitState, account: str, total_received: int, asset: str) -> int:
    entitled = total_received * state['shares'].get(account, 0) // state['total_shares']
    already = state['released'].get(asset, {}).get(account, 0)
    return max(entitled - already, 0)


def _total_received(view: LedgerView, state: UnitState, asset: str) -> int:
    return view.get_balance(state['address'], asset) + state['total_released'].get(asset, 0)


def total_shares(view: LedgerView, splitter: str) -> int:
    """Sum of all payees' shares."""
    return _splitter_state(view, splitter)['total_shares']


def payees(view: LedgerView, splitter: str) -> List[str]:
    """All payees, in registration order."""
    return list(_splitter_state(view, splitter)['payees'])


def payee(view: LedgerView, splitter: str, index: int) -> str:
    """
    Payee at `index`.

    Raises:
        IndexOutOfRange: index is not in [0, number of payees)
    """
    registry = _splitter_state(view, splitter)['payees']
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(registry):
        raise IndexOutOfRange(f"payee index {index!r} out of range (payees: {len(registry)})")
    return registry[index]


def shares(view: LedgerView, splitter: str, account: str) -> int:
    """Shares held by `account`; 0 for addresses that are not payees."""
    return _splitter_state(view, splitter)['shares'].get(account, 0)


def total_released(view: LedgerView, splitter: str, asset: Optional[str] = None) -> int:
    """Cumulative amount of `asset` paid out (native asset by default)."""
    state = _splitter_state(view, splitter)
    return state['total_released'].get(_resolve_asset(state, asset), 0)


def released(view: LedgerView, splitter: str, account: str, asset: Optional[str] = None) -> int:
    """Cumulative amount of `asset` paid to `account` (native asset by default)."""
    state = _splitter_state(view, splitter)
    return state['released'].get(_resolve_asset(state, asset), {}).get(account, 0)


def total_received(view: LedgerView, splitter: str, asset: Optional[str] = None) -> int:
    """Everything the splitter ever received in `asset`: held plus released."""
    state = _splitter_state(view, splitter)
    return _total_received(view, state, _resolve_asset(state, asset))


def releasable(view: LedgerView, splitter: str, account: str, asset: Optional[str] = None) -> int:
    """Amount of `asset` currently owed to `account` and not yet paid; 0 for non-payees."""
    state = _splitter_state(view, splitter)
    asset = _resolve_asset(state, asset)
    if state['shares'].get(account, 0) == 0:
        return 0
    return _pending_payment(state, account, _total_received(view, state, asset), asset)


# ============================================================================
# RELEASES
# ============================================================================

def _release_event(view: LedgerView, asset: str) -> str:
    unit_type = view.get_unit(asset).unit_type
    if unit_type not in FUNGIBLE_UNIT_TYPES:
        raise ValueError(f"{asset} is not a fungible asset ({unit_type})")
    return EVENT_PAYMENT_RELEASED if unit_type == UNIT_TYPE_NATIVE else EVENT_ERC20_PAYMENT_RELEASED


def _release_moves(
    view: LedgerView,
    state: UnitState,
    asset: str,
    accounts: Sequence[str],
) -> Tuple[List[Move], UnitState]:
    """
    Payment moves for `accounts` and the splitter state after paying them.

    Every payment is computed against the same received total, which a
    release does not change (the balance drops by what total_released gains).
    """
    splitter = state['address']
    received = _total_received(view, state, asset)
    per_asset = dict(state['released'].get(asset, {}))
    paid_total = state['total_released'].get(asset, 0)

    moves = []
    for account in accounts:
        payment = _pending_payment(state, account, received, asset)
        if payment <= 0:
            continue
        per_asset[account] = per_asset.get(account, 0) + payment
        paid_total += payment
        moves.append(Move(payment, asset, splitter, account, f'release_{splitter}_{asset}_{account}'))

    new_state = {
        **state,
        'released': {**state['released'], asset: per_asset},
        'total_released': {**state['total_released'], asset: paid_total},
    }
    return moves, new_state


def compute_release(
    view: LedgerView,
    splitter: str,
    account: str,
    asset: Optional[str] = None,
) -> PendingTransaction:
    """
    Build the transaction paying `account` everything it is owed in `asset`.

    Args:
        view: Read-only ledger access
        splitter: Splitter address
        account: Payee to pay; anyone may request a release for any payee
        asset: Asset to release (default: the splitter's native asset)

    Returns:
        PendingTransaction with one move (splitter -> account) and the
        matching accounting update.

    Raises:
        NotAPayee: account holds no shares
        NothingDue: nothing is currently releasable to account
    """
    state = _splitter_state(view, splitter)
    asset = _resolve_asset(state, asset)
    if state['shares'].get(account, 0) == 0:
        raise NotAPayee(f"account {account} has no shares in {splitter}")

    event = _release_event(view, asset)
    moves, new_state = _release_moves(view, state, asset, [account])
    if not moves:
        raise NothingDue(f"account {account} is not due payment of {asset}")

    origin = TransactionOrigin(OriginType.CONTRACT, splitter, asset, event)
    changes = [UnitStateChange(unit=splitter, old_state=state, new_state=new_state)]
    return build_transaction(view, moves, changes, origin)


def release(ledger: Ledger, splitter: str, account: str, asset: Optional[str] = None) -> int:
    """
    Pay `account` everything it is owed in `asset` and return the amount.

    Raises:
        NotAPayee: account holds no shares
        NothingDue: nothing is currently releasable to account
        TransferFailure: the payment was rejected (receiver refused it, or
                         the wallet cannot cover it); nothing changed

    Example:
        ledger.execute(transfer(ledger, "ETH", owner, "splitter", parse_ether("1")))
        release(ledger, "splitter", "alice")          # native asset
        release(ledger, "splitter", "alice", "WBTC")  # a token
    """
    pending = compute_release(ledger, splitter, account, asset)
    result = ledger.execute(pending)
    if result != ExecuteResult.APPLIED:
        raise TransferFailure(
            f"release of {pending.origin.unit_symbol} from {splitter} to {account} failed: {result.value}"
        )
    return pending.moves[0].quantity


def compute_release_all(
    view: LedgerView,
    splitter: str,
    asset: Optional[str] = None,
) -> PendingTransaction:
    """
    Build one transaction paying every payee with something due in `asset`.

    Payees with nothing due are skipped. Returns an empty PendingTransaction
    when no payee is owed anything.
    """
    state = _splitter_state(view, splitter)
    asset = _resolve_asset(state, asset)
    event = _release_event(view, asset)

    moves, new_state = _release_moves(view, state, asset, state['payees'])
    if not moves:
        return empty_pending_transaction(view)

    origin = TransactionOrigin(OriginType.CONTRACT, splitter, asset, event)
    changes = [UnitStateChange(unit=splitter, old_state=state, new_state=new_state)]
    return build_transaction(view, moves, changes, origin)


def payment_splitter_contract(
    view: LedgerView,
    symbol: str,
    timestamp: datetime,
    prices: Dict[str, Decimal],
) -> PendingTransaction:
    """
    SmartContract interface for LifecycleEngine: distribute everything due.

    Sweeps every registered fungible asset in one transaction. Prices are
    not used.

    Example:
        engine = LifecycleEngine(ledger)
        engine.register(UNIT_TYPE_PAYMENT_SPLITTER, payment_splitter_contract)
        engine.step(datetime(2025, 1, 2), {})
    """
    old_state = _splitter_state(view, symbol)
    new_state = old_state
    moves: List[Move] = []
    for asset in view.list_units():
        if view.get_unit(asset).unit_type not in FUNGIBLE_UNIT_TYPES:
            continue
        asset_moves, new_state = _release_moves(view, new_state, asset, old_state['payees'])
        moves.extend(asset_moves)

    if not moves:
        return empty_pending_transaction(view)

    origin = TransactionOrigin(OriginType.LIFECYCLE, symbol, None, EVENT_DISTRIBUTION)
    changes = [UnitStateChange(unit=symbol, old_state=old_state, new_state=new_state)]
    return build_transaction(view, moves, changes, origin)


# ============================================================================
# EVENT VIEWS
# ============================================================================

def payments_released(ledger: Ledger, splitter: str, asset: Optional[str] = None) -> List[PaymentReleased]:
    """Every payout made by `splitter`, in execution order."""
    return [
        PaymentReleased(move.unit_symbol, move.dest, move.quantity, tx.exec_id, tx.execution_time)
        for tx in ledger.transaction_log
        for move in tx.moves
        if move.source == splitter and (asset is None or move.unit_symbol == asset)
    ]


def payments_received(ledger: Ledger, splitter: str, asset: Optional[str] = None) -> List[PaymentReceived]:
    """Every transfer into `splitter`'s wallet, in execution order."""
    return [
        PaymentReceived(move.unit_symbol, move.source, move.quantity, tx.exec_id, tx.execution_time)
        for tx in ledger.transaction_log
        for move in tx.moves
        if move.dest == splitter and (asset is None or move.unit_symbol == asset)
    ]
