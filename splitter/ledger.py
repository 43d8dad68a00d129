"""
ledger.py - Stateful Double-Entry Ledger (the host chain)

The Ledger class is the central state manager. It is the only module that
mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves succeed or all fail)
    - Maintains wallet balances and unit (asset / contract) definitions
    - Runs receive hooks of program-controlled wallets after each commit,
      rolling everything back if a receiver refuses the funds
    - Tracks per-wallet nonces, time, and the audit trail (clone, replay)
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Set, Optional, Tuple, Any
import copy

from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions, UnitState, BalanceMap,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    LedgerError, TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state,
)


# Code run by a program-controlled wallet when it receives a move. It gets
# the live ledger, so it may call back into contracts. Raising ReceiveRejected
# (or any LedgerError) refuses the funds.
ReceiveHook = Callable[['Ledger', Move], None]


@dataclass
class _Snapshot:
    """Everything execute() must restore when a receiver refuses funds."""
    balances: Dict[str, Dict[str, int]]
    registered_wallets: Set[str]
    receive_hooks: Dict[str, ReceiveHook]
    units: Dict[str, Unit]
    positions: Dict[str, Dict[str, int]]
    log_length: int
    nonces: Dict[str, int]
    next_sequence: int


class Ledger:
    """
    Double-entry ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked against registration,
          balance constraints, transfer rules and timestamps.
        - Always logs: every applied transaction is recorded in the audit
          trail, enabling replay().
        - Effects before interactions: state changes and moves are committed
          before any receive hook runs, so a re-entrant call observes them.

    Thread Safety:
        Not thread-safe. Execution is serialised by construction.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(native_currency())
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")

        ledger.execute(mint(ledger, "ETH", "alice", parse_ether("1")))
        ledger.execute(transfer(ledger, "ETH", "alice", "bob", parse_ether("0.5")))
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print registrations, rejections and receipts (default: True)
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.receive_hooks: Dict[str, ReceiveHook] = {}
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        self._nonces: Dict[str, int] = defaultdict(int)
        # Inverted index unit -> {wallet -> quantity}
        self._positions_by_unit: Dict[str, Dict[str, int]] = defaultdict(dict)

        # The system wallet issues and redeems supply
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        unit_obj = self.units[unit_symbol]
        return copy.deepcopy(unit_obj.state) if unit_obj.state else {}

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a unit across all wallets."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def get_nonce(self, wallet_id: str) -> int:
        """Number of applied transactions whose origin is this wallet."""
        return self._nonces.get(wallet_id, 0)

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return dict(self.balances[wallet_id])

    def total_supply(self, unit_symbol: str) -> int:
        """
        Sum of a unit's balances across all wallets, system wallet included.

        Issuance debits the system wallet, so this is zero for every unit
        whose supply only ever moved through transactions.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(self.balances[w].get(unit_symbol, 0) for w in sorted(self.registered_wallets))

    def verify_double_entry(
        self,
        expected_supplies: Dict[str, int] = None,
    ) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all units.

        Args:
            expected_supplies: Optional dict mapping unit symbols to expected
                totals. Defaults to zero for every unit, the invariant for
                ledgers funded only through the system wallet.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, int] - Current total supply for each unit
            - 'discrepancies': List[Dict] - unit, expected, actual, difference

        Example:
            result = ledger.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        if expected_supplies is None:
            expected_supplies = {symbol: 0 for symbol in self.units}

        supplies = {}
        discrepancies = []

        for unit_symbol in self.units:
            current_supply = self.total_supply(unit_symbol)
            supplies[unit_symbol] = current_supply

            if unit_symbol in expected_supplies:
                expected = expected_supplies[unit_symbol]
                if current_supply != expected:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': current_supply,
                        'difference': current_supply - expected,
                    })

        for unit_symbol, expected in expected_supplies.items():
            if unit_symbol not in supplies:
                discrepancies.append({
                    'unit': unit_symbol,
                    'expected': expected,
                    'actual': 0,
                    'difference': -expected,
                    'error': 'unit not registered',
                })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str, on_receive: Optional[ReceiveHook] = None) -> str:
        """
        Register a new wallet in the ledger.

        Args:
            wallet_id: Unique identifier (address) for the wallet
            on_receive: Optional hook run whenever the wallet receives a move,
                        making it a program-controlled address

        Returns:
            The wallet_id that was registered

        Raises:
            ValueError: If wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("wallet_id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        if on_receive is not None:
            self.receive_hooks[wallet_id] = on_receive
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit (asset or contract) in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            rule_str = f", rule={unit.transfer_rule.__name__}" if unit.transfer_rule else ""
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]{rule_str}")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """
        Set a wallet's balance for a unit directly.

        WARNING: bypasses double-entry accounting; only available in test mode.
        Funds placed this way still count towards a splitter's received total,
        since that total is derived from the observed balance.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        self.balances[wallet_id][unit_symbol] = int(quantity)
        self._update_position_index(wallet_id, unit_symbol, int(quantity))

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        Order of operations:
        1. Idempotency check on intent_id
        2. Validation (registration, transfer rules, balance limits, timestamp)
        3. Commit: unit creation, state changes, moves, log entry, nonce
        4. Receive hooks of destination wallets, in move order

        If a receive hook raises, the ledger is restored to its state before
        step 3 (including anything done by re-entrant calls) and the
        transaction is REJECTED. Errors that are not LedgerErrors are
        re-raised after the restore.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if transaction was already executed
            ExecuteResult.REJECTED if validation failed or a receiver refused
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        valid, reason = self._validate_pending(pending)
        if not valid:
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        # Only transactions that hand control to a receiver can need a rollback
        snapshot = None
        if any(move.dest in self.receive_hooks for move in pending.moves):
            snapshot = self._snapshot()

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
        )

        for unit in tx.units_to_create:
            self.register_unit(unit)
        self._apply_state_changes(tx)
        self._execute_moves(tx.moves)
        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)
        self._nonces[tx.origin.source_id] += 1

        if snapshot is not None:
            try:
                self._notify_receivers(tx)
            except LedgerError as e:
                self._restore(snapshot)
                if self.verbose:
                    print(f"✗ REJECTED: receiver refused {tx.intent_id}: {e}")
                return ExecuteResult.REJECTED
            except Exception:
                self._restore(snapshot)
                raise

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print the transaction receipt with a result line appended."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate pending transaction against all constraints.

        Checks performed:
        1. Timestamp validation (transaction must not be from the future)
        2. Units to create must not already exist
        3. Unit and wallet registration
        4. Transfer rule enforcement
        5. Balance constraint validation (min/max balance limits)

        Returns:
            (True, "") on success, (False, reason) otherwise
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        new_units = {}
        for unit in pending.units_to_create:
            if unit.symbol in self.units or unit.symbol in new_units:
                return False, f"unit already registered: {unit.symbol}"
            new_units[unit.symbol] = unit

        for sc in pending.state_changes:
            if sc.unit not in self.units and sc.unit not in new_units:
                return False, f"unit not registered: {sc.unit}"

        for move in pending.moves:
            unit = self.units.get(move.unit_symbol) or new_units.get(move.unit_symbol)
            if unit is None:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"

            if unit.transfer_rule:
                try:
                    unit.transfer_rule(self, move)
                except TransferRuleViolation as e:
                    return False, str(e)

        net: Dict[Tuple[str, str], int] = defaultdict(int)
        for move in pending.moves:
            net[(move.source, move.unit_symbol)] -= move.quantity
            net[(move.dest, move.unit_symbol)] += move.quantity

        # SYSTEM_WALLET is exempt from balance validation
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue

            unit = self.units.get(unit_sym) or new_units[unit_sym]
            proposed = self.balances[wallet][unit_sym] + delta

            if proposed < unit.min_balance:
                return False, f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if unit.max_balance is not None and proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        return True, ""

    def _apply_state_changes(self, tx: Transaction) -> None:
        """Replace unit state with each change's new_state (Unit is frozen)."""
        for sc in tx.state_changes:
            old_unit = self.units[sc.unit]
            new_state = copy.deepcopy(sc.new_state if isinstance(sc.new_state, dict) else {})
            self.units[sc.unit] = replace(old_unit, _frozen_state=_freeze_state(new_state))

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """Keep the unit -> {wallet -> quantity} index in sync; zero balances are dropped."""
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply moves to wallet balances and update the position index."""
        for move in moves:
            new_src_balance = self.balances[move.source][move.unit_symbol] - move.quantity
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)

            new_dst_balance = self.balances[move.dest][move.unit_symbol] + move.quantity
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    def _notify_receivers(self, tx: Transaction) -> None:
        """Run the receive hook of every destination wallet that has one."""
        for move in tx.moves:
            hook = self.receive_hooks.get(move.dest)
            if hook is not None:
                hook(self, move)

    # ========================================================================
    # SNAPSHOT / ROLLBACK
    # ========================================================================

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            balances={w: dict(b) for w, b in self.balances.items()},
            registered_wallets=set(self.registered_wallets),
            receive_hooks=dict(self.receive_hooks),
            units=dict(self.units),
            positions={u: dict(p) for u, p in self._positions_by_unit.items()},
            log_length=len(self.transaction_log),
            nonces=dict(self._nonces),
            next_sequence=self._next_sequence,
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        # Units are frozen and state dicts are deep-copied on write, so a
        # shallow copy of the mapping is enough to restore them.
        self.balances = {w: defaultdict(int, b) for w, b in snapshot.balances.items()}
        self.registered_wallets = set(snapshot.registered_wallets)
        self.receive_hooks = dict(snapshot.receive_hooks)
        self.units = dict(snapshot.units)
        self._positions_by_unit = defaultdict(dict, {u: dict(p) for u, p in snapshot.positions.items()})
        # Every logged transaction added exactly one intent id
        for tx in self.transaction_log[snapshot.log_length:]:
            self.seen_intent_ids.discard(tx.intent_id)
        del self.transaction_log[snapshot.log_length:]
        self._nonces = defaultdict(int, snapshot.nonces)
        self._next_sequence = snapshot.next_sequence

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a fully independent copy of this ledger.

        Receive hooks are shared by reference; they are code, not state.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.transaction_log = list(self.transaction_log)
        cloned.seen_intent_ids = set(self.seen_intent_ids)
        cloned._restore(self._snapshot())
        return cloned

    def replay(self, from_tx: int = 0) -> Ledger:
        """
        Create a new ledger by replaying the transaction log.

        Unit definitions are copied with the state they had before their
        first logged change, except units created by a logged transaction,
        which the replay creates itself. Receive hooks
        are not installed: the log already contains every transaction they
        caused, in execution order.

        Note: balances set via set_balance() are not in the log and are not
        replayed.

        Raises:
            LedgerError: If a logged transaction is rejected during replay
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            initial_time=datetime(1970, 1, 1),
            verbose=self.verbose,
            test_mode=self._test_mode
        )

        units_created_in_log = set()
        for tx in self.transaction_log[from_tx:]:
            for unit in tx.units_to_create:
                units_created_in_log.add(unit.symbol)

        for symbol, unit in self.units.items():
            if symbol in units_created_in_log:
                continue
            new_ledger.units[symbol] = replace(unit, _frozen_state=_freeze_state(
                self._initial_state(symbol, unit)
            ))

        for wallet in self.registered_wallets:
            if wallet != SYSTEM_WALLET:
                new_ledger.register_wallet(wallet)

        for tx in self.transaction_log[from_tx:]:
            if tx.timestamp > new_ledger._current_time:
                new_ledger.advance_time(tx.timestamp)

            pending = PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                timestamp=tx.timestamp,
                units_to_create=tx.units_to_create,
            )
            result = new_ledger.execute(pending)
            if result == ExecuteResult.REJECTED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}")

        return new_ledger

    def _initial_state(self, symbol: str, unit: Unit) -> UnitState:
        """State of a pre-registered unit before its first logged change."""
        for tx in self.transaction_log:
            for sc in tx.state_changes:
                if sc.unit == symbol:
                    return copy.deepcopy(sc.old_state) if isinstance(sc.old_state, dict) else {}
        return unit.state
