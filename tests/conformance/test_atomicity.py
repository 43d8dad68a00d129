"""
Atomicity Conformance Tests

INVARIANT: Releases are all-or-nothing.

    ∀ release R:
        R succeeds ⟹ the payment and its accounting update are both applied
        R fails    ⟹ neither is applied, and no other state changed

A payee refusing funds, a rejected move or a failed lookup leaves balances,
splitter state, log and nonces exactly as they were.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from splitter import (
    ExecuteResult, Move, build_transaction,
    deploy_payment_splitter, compute_release, compute_release_all, release,
    payee, ReceiveRejected, TransferFailure, ReleaseError, IndexOutOfRange,
    NATIVE_ASSET,
)

from tests.helpers import new_chain, fund, NON_PAYEE, SPLITTER, PAYEES, SHARES


def _fingerprint(ledger):
    """Everything a failed operation must leave untouched."""
    return (
        {w: ledger.get_balance(w, NATIVE_ASSET) for w in sorted(ledger.list_wallets())},
        ledger.get_unit_state(SPLITTER),
        len(ledger.transaction_log),
        frozenset(ledger.seen_intent_ids),
        {w: ledger.get_nonce(w) for w in sorted(ledger.list_wallets())},
    )


def _refuse(ledger, move):
    raise ReceiveRejected("refused")


class TestAtomicityProperties:

    @given(
        st.sets(st.sampled_from(PAYEES), min_size=1),
        st.integers(min_value=100, max_value=10**20),
    )
    @settings(max_examples=50, deadline=None)
    def test_sweep_with_refusing_payee_changes_nothing(self, refusers, amount):
        ledger = new_chain("atomicity")
        for account in refusers:
            ledger.register_wallet(account, on_receive=_refuse)
        deploy_payment_splitter(ledger, SPLITTER, PAYEES, SHARES)
        fund(ledger, amount)

        before = _fingerprint(ledger)
        assert ledger.execute(compute_release_all(ledger, SPLITTER)) == ExecuteResult.REJECTED
        assert _fingerprint(ledger) == before

    @given(st.sampled_from(PAYEES), st.integers(min_value=100, max_value=10**20))
    @settings(max_examples=50, deadline=None)
    def test_refused_release_changes_nothing(self, refuser, amount):
        ledger = new_chain("atomicity")
        ledger.register_wallet(refuser, on_receive=_refuse)
        deploy_payment_splitter(ledger, SPLITTER, PAYEES, SHARES)
        fund(ledger, amount)

        before = _fingerprint(ledger)
        with pytest.raises(TransferFailure):
            release(ledger, SPLITTER, refuser)
        assert _fingerprint(ledger) == before

    @given(st.sampled_from(PAYEES + [NON_PAYEE]), st.integers(min_value=0, max_value=9))
    @settings(max_examples=50, deadline=None)
    def test_release_errors_change_nothing(self, account, amount):
        """NotAPayee and NothingDue are raised before anything executes."""
        ledger = new_chain("atomicity")
        deploy_payment_splitter(ledger, SPLITTER, PAYEES, SHARES)
        if amount:
            fund(ledger, amount)
        # Below 10 wei, payee2 (10%) is never owed anything
        if (account == PAYEES[0] and amount >= 5) or (account == PAYEES[2] and amount >= 2):
            return

        before = _fingerprint(ledger)
        with pytest.raises(ReleaseError):
            release(ledger, SPLITTER, account)
        assert _fingerprint(ledger) == before

    @given(st.integers(min_value=-5, max_value=10).filter(lambda i: not 0 <= i < 3))
    @settings(max_examples=25)
    def test_bad_index_changes_nothing(self, index):
        ledger = new_chain("atomicity")
        deploy_payment_splitter(ledger, SPLITTER, PAYEES, SHARES)
        before = _fingerprint(ledger)
        with pytest.raises(IndexOutOfRange):
            payee(ledger, SPLITTER, index)
        assert _fingerprint(ledger) == before


class TestAtomicityExamples:

    def test_release_with_extra_overdrawing_move_rejected(self, splitter_ledger):
        """A release bundled with an invalid move is rejected as a whole."""
        fund(splitter_ledger, 1000)
        pending = compute_release(splitter_ledger, SPLITTER, PAYEES[0])
        bad = build_transaction(
            splitter_ledger,
            list(pending.moves) + [Move(10**30, NATIVE_ASSET, NON_PAYEE, PAYEES[1], "overdraw")],
            list(pending.state_changes),
            pending.origin,
        )
        before = _fingerprint(splitter_ledger)
        assert splitter_ledger.execute(bad) == ExecuteResult.REJECTED
        assert _fingerprint(splitter_ledger) == before

    def test_overpaying_release_rejected(self, splitter_ledger):
        """Accounting that claims more than the wallet holds cannot execute."""
        fund(splitter_ledger, 1000)
        pending = compute_release(splitter_ledger, SPLITTER, PAYEES[2])
        inflated = build_transaction(
            splitter_ledger,
            [Move(1001, NATIVE_ASSET, SPLITTER, PAYEES[2], "release_too_much")],
            list(pending.state_changes),
            pending.origin,
        )
        before = _fingerprint(splitter_ledger)
        assert splitter_ledger.execute(inflated) == ExecuteResult.REJECTED
        assert _fingerprint(splitter_ledger) == before
