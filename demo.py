#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Payment Splitter Step by Step

A walk through the payment splitter on a double-entry ledger. Each step
builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup          - The chain, deploying a splitter, funding it
  4-5:  Releases       - Paying payees, funding twice, rounding dust
  6:    Tokens         - Splitting an ERC20-style token
  7-8:  Safety         - Re-entrant payees, refused payouts
  9-10: Automation     - LifecycleEngine sweeps, conservation and replay

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List
import sys

from splitter import (
    Ledger, ExecuteResult, LifecycleEngine,
    native_currency, create_token_unit, parse_ether, format_units,
    mint, transfer, balance_of,
    deploy_payment_splitter, release, released, releasable, total_released,
    total_received, compute_release_all, payment_splitter_contract,
    payments_released,
    NothingDue, ReceiveRejected, TransferFailure,
    UNIT_TYPE_PAYMENT_SPLITTER,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    owner_initial_eth: str = "100"
    payees: List[str] = field(default_factory=lambda: ["payee1", "payee2", "payee3"])
    shares: List[int] = field(default_factory=lambda: [20, 10, 70])
    payment: str = "1"

    token_symbol: str = "WBTC"
    token_decimals: int = 8
    token_amount: int = 100


CONFIG = DemoConfig()
SPLITTER = "splitter"

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_payees(ledger: Ledger, asset: str = "ETH", decimals: int = 18):
    for account in CONFIG.payees:
        print(f"  {account}: released={format_units(released(ledger, SPLITTER, account, asset), decimals):>6}"
              f"  releasable={format_units(releasable(ledger, SPLITTER, account, asset), decimals):>6}")


# ============================================================================
# STEPS
# ============================================================================

def step_01_chain() -> Ledger:
    step_header(1, "The Chain", "A ledger with a native currency and a funded owner.")
    ledger = Ledger("mainnet", initial_time=CONFIG.start_time, verbose=False)
    ledger.register_unit(native_currency())
    ledger.register_wallet("owner")
    ledger.execute(mint(ledger, "ETH", "owner", parse_ether(CONFIG.owner_initial_eth)))
    print(f"owner holds {format_units(ledger.get_balance('owner', 'ETH'))} ETH")
    return ledger


def step_02_deploy(ledger: Ledger) -> Ledger:
    step_header(2, "Deploying a Splitter",
        "Payees and shares are fixed at deployment and never change.")
    print(f">>> deploy_payment_splitter(ledger, '{SPLITTER}', {CONFIG.payees}, {CONFIG.shares})")
    deploy_payment_splitter(ledger, SPLITTER, CONFIG.payees, CONFIG.shares)
    tx = ledger.transaction_log[-1]
    print(f"deployment logged as {tx.exec_id} ({tx.origin.event_type})")
    return ledger


def step_03_fund(ledger: Ledger) -> Ledger:
    step_header(3, "Funding", "Funds arrive by plain transfers; there is no deposit call.")
    ledger.execute(transfer(ledger, "ETH", "owner", SPLITTER, parse_ether(CONFIG.payment)))
    print(f"splitter balance: {format_units(ledger.get_balance(SPLITTER, 'ETH'))} ETH")
    show_payees(ledger)
    return ledger


def step_04_release(ledger: Ledger) -> Ledger:
    step_header(4, "Releasing", "Anyone can trigger a release; it pays what is owed.")
    paid = release(ledger, SPLITTER, "payee1")
    print(f"release(payee1) paid {format_units(paid)} ETH")
    try:
        release(ledger, SPLITTER, "payee1")
    except NothingDue as e:
        print(f"second release(payee1): NothingDue ({e})")
    show_payees(ledger)
    return ledger


def step_05_fund_again(ledger: Ledger) -> Ledger:
    step_header(5, "Funding Twice", "Entitlements are cumulative over everything received.")
    ledger.execute(transfer(ledger, "ETH", "owner", SPLITTER, parse_ether(CONFIG.payment)))
    for account in CONFIG.payees:
        release(ledger, SPLITTER, account)
    show_payees(ledger)
    print(f"total released: {format_units(total_released(ledger, SPLITTER))} ETH")

    section_header("Rounding dust")
    ledger.execute(transfer(ledger, "ETH", "owner", SPLITTER, 7))
    ledger.execute(compute_release_all(ledger, SPLITTER))
    print(f"7 wei in, {ledger.get_balance(SPLITTER, 'ETH')} wei left as dust (paid on a later funding)")
    return ledger


def step_06_tokens(ledger: Ledger) -> Ledger:
    step_header(6, "Tokens", "Each asset has its own accounting.")
    symbol = CONFIG.token_symbol
    ledger.register_unit(create_token_unit(symbol, "WBTC Token", decimals=CONFIG.token_decimals))
    ledger.execute(mint(ledger, symbol, SPLITTER, CONFIG.token_amount))
    for account in CONFIG.payees:
        release(ledger, SPLITTER, account, symbol)
    for account in CONFIG.payees:
        print(f"  {account}: {balance_of(ledger, symbol, account)} {symbol} base units")
    return ledger


def step_07_reentrancy():
    step_header(7, "Re-entrant Payees", "A payee's code sees its accounting already updated.")
    ledger = Ledger("reentrancy", initial_time=CONFIG.start_time, verbose=False)
    ledger.register_unit(native_currency())

    def greedy(view, move):
        try:
            release(view, SPLITTER, "payee1")
        except NothingDue:
            print("  payee1 hook: re-entrant release refused with NothingDue")

    ledger.register_wallet("payee1", on_receive=greedy)
    deploy_payment_splitter(ledger, SPLITTER, CONFIG.payees, CONFIG.shares)
    ledger.execute(mint(ledger, "ETH", SPLITTER, parse_ether(CONFIG.payment)))
    release(ledger, SPLITTER, "payee1")
    print(f"payee1 received {format_units(ledger.get_balance('payee1', 'ETH'))} ETH, once")


def step_08_refused_payout():
    step_header(8, "Refused Payouts", "A refused payment rolls the whole release back.")
    ledger = Ledger("refusal", initial_time=CONFIG.start_time, verbose=False)
    ledger.register_unit(native_currency())

    def refuse(view, move):
        raise ReceiveRejected("payee3 does not accept ETH")

    ledger.register_wallet("payee3", on_receive=refuse)
    deploy_payment_splitter(ledger, SPLITTER, CONFIG.payees, CONFIG.shares)
    ledger.execute(mint(ledger, "ETH", SPLITTER, parse_ether(CONFIG.payment)))
    try:
        release(ledger, SPLITTER, "payee3")
    except TransferFailure as e:
        print(f"TransferFailure: {e}")
    print(f"released to payee3: {released(ledger, SPLITTER, 'payee3')}, "
          f"splitter still holds {format_units(ledger.get_balance(SPLITTER, 'ETH'))} ETH")


def step_09_engine(ledger: Ledger) -> Ledger:
    step_header(9, "Scheduled Distribution", "The LifecycleEngine sweeps every splitter.")
    engine = LifecycleEngine(ledger)
    engine.register(UNIT_TYPE_PAYMENT_SPLITTER, payment_splitter_contract)
    ledger.execute(transfer(ledger, "ETH", "owner", SPLITTER, parse_ether("3")))
    executed = engine.step(ledger.current_time + timedelta(days=1), {})
    for tx in executed:
        print(tx)
    return ledger


def step_10_audit(ledger: Ledger):
    step_header(10, "Conservation and Replay", "Held + released = received; the log rebuilds state.")
    print(f"received: {format_units(total_received(ledger, SPLITTER))} ETH, "
          f"released: {format_units(total_released(ledger, SPLITTER))} ETH, "
          f"held: {format_units(ledger.get_balance(SPLITTER, 'ETH'))} ETH")
    print(f"payouts logged: {len(payments_released(ledger, SPLITTER))}")
    print(f"double entry: {ledger.verify_double_entry()['valid']}")
    replayed = ledger.replay()
    same = replayed.get_unit_state(SPLITTER) == ledger.get_unit_state(SPLITTER)
    print(f"replay reproduces splitter state: {same}")


def main():
    print("=" * 70)
    print("       PAYMENT SPLITTER - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    wait_for_enter()

    ledger = step_01_chain()
    wait_for_enter()
    ledger = step_02_deploy(ledger)
    wait_for_enter()
    ledger = step_03_fund(ledger)
    wait_for_enter()
    ledger = step_04_release(ledger)
    wait_for_enter()
    ledger = step_05_fund_again(ledger)
    wait_for_enter()
    ledger = step_06_tokens(ledger)
    wait_for_enter()
    step_07_reentrancy()
    wait_for_enter()
    step_08_refused_payout()
    wait_for_enter()
    ledger = step_09_engine(ledger)
    wait_for_enter()
    step_10_audit(ledger)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See splitter/units/payment_splitter.py for the contract
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
