"""
lifecycle_engine.py - Lifecycle Engine

Polls registered smart contracts at each timestep and executes whatever
transactions they return, e.g. periodic distribution sweeps of payment
splitters.

Execution order each step():
1. Advance ledger time
2. Poll contracts, in sorted unit order
3. Repeat until no contract returns work (bounded by max_passes)

The transaction log is the audit trail - no separate status tracking needed.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Callable

from .core import (
    PendingTransaction, Transaction,
    ExecuteResult, LedgerError,
    SmartContract,
)
from .ledger import Ledger


class LifecycleEngine:
    """
    Lifecycle engine driving smart contract polling.

    Example:
        engine = LifecycleEngine(ledger)
        engine.register(UNIT_TYPE_PAYMENT_SPLITTER, payment_splitter_contract)
        engine.run([datetime(2025, 1, d) for d in range(1, 8)], lambda ts: {})
    """

    def __init__(
        self,
        ledger: Ledger,
        contracts: Optional[Dict[str, SmartContract]] = None,
    ):
        """
        Initialize lifecycle engine.

        Args:
            ledger: The ledger to operate on
            contracts: Smart contracts for polling (unit_type -> contract)
        """
        self.ledger = ledger
        self.contracts: Dict[str, SmartContract] = contracts or {}

        # Safety limit for cascading events
        self.max_passes = 10
        self.verbose = ledger.verbose

    def register(self, unit_type: str, contract: SmartContract) -> None:
        """
        Register a smart contract for a unit type.

        Args:
            unit_type: Type of unit (e.g., "PAYMENT_SPLITTER")
            contract: Callable or object with check_lifecycle
        """
        self.contracts[unit_type] = contract

    def step(
        self,
        timestamp: datetime,
        prices: Dict[str, Decimal],
    ) -> List[Transaction]:
        """
        Advance time and execute everything the contracts want to do.

        Returns:
            List of executed transactions
        """
        self.ledger.advance_time(timestamp)
        executed: List[Transaction] = []

        for _ in range(self.max_passes):
            pass_executed = self._process_smart_contracts(timestamp, prices)
            executed.extend(pass_executed)
            if not pass_executed:
                break

        return executed

    def _process_smart_contracts(
        self,
        timestamp: datetime,
        prices: Dict[str, Decimal],
    ) -> List[Transaction]:
        """Run one polling pass over all units with a registered contract."""
        executed: List[Transaction] = []

        for symbol in self.ledger.list_units():
            unit = self.ledger.units[symbol]
            contract = self.contracts.get(unit.unit_type)

            if not contract:
                continue

            if hasattr(contract, 'check_lifecycle'):
                pending = contract.check_lifecycle(self.ledger, symbol, timestamp, prices)
            else:
                pending = contract(self.ledger, symbol, timestamp, prices)

            if not isinstance(pending, PendingTransaction):
                raise LedgerError(
                    f"Contract for {symbol} must return PendingTransaction, got {type(pending)}"
                )

            if pending.is_empty():
                continue

            if self.verbose:
                print(f"[LIFECYCLE] {symbol}: {pending}")

            exec_result = self.ledger.execute(pending)

            if exec_result == ExecuteResult.REJECTED:
                raise LedgerError(f"Lifecycle event failed for {symbol}: contract execution rejected")

            if exec_result == ExecuteResult.APPLIED:
                # Receive hooks may have logged transactions after this one
                executed.append(next(
                    tx for tx in reversed(self.ledger.transaction_log)
                    if tx.intent_id == pending.intent_id
                ))

        return executed

    def run(
        self,
        timestamps: List[datetime],
        get_prices_at_timestamp: Callable[[datetime], Dict[str, Decimal]],
    ) -> List[Transaction]:
        """
        Run engine through a sequence of timestamps.

        Returns:
            All executed transactions
        """
        all_transactions: List[Transaction] = []

        for timestamp in timestamps:
            prices = get_prices_at_timestamp(timestamp)
            all_transactions.extend(self.step(timestamp, prices))

        return all_transactions
