"""
splitter - Proportional Payment Splitter on a Double-Entry Ledger

Divides funds sent to a splitter's address (native currency or fungible
tokens) among a fixed set of payees in proportion to their shares, and
releases each payee's accrued balance on demand.

Usage:
    from splitter import (
        Ledger, native_currency, parse_ether, mint, transfer,
        deploy_payment_splitter, release, released,
    )

    ledger = Ledger("main", verbose=False)
    ledger.register_unit(native_currency())
    ledger.register_wallet("owner")
    ledger.execute(mint(ledger, "ETH", "owner", parse_ether("10")))

    deploy_payment_splitter(ledger, "splitter", ["alice", "bob", "carol"], [20, 10, 70])

    # Fund the splitter with an ordinary transfer
    ledger.execute(transfer(ledger, "ETH", "owner", "splitter", parse_ether("1")))

    release(ledger, "splitter", "alice")     # pays 0.2 ETH
    released(ledger, "splitter", "alice")    # 200000000000000000
"""

# Core types
from .core import (
    LedgerView,
    SmartContract,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    InsufficientFunds,
    BalanceConstraintViolation,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    ReceiveRejected,
    TransferFailure,
    ConstructionError,
    LengthMismatch,
    NoPayees,
    DuplicatePayee,
    ZeroAddress,
    ZeroShare,
    ReleaseError,
    NotAPayee,
    NothingDue,
    IndexOutOfRange,
    native_currency,
    non_transferable_rule,
    parse_units,
    format_units,
    parse_ether,
    SYSTEM_WALLET,
    ZERO_ADDRESS,
    NATIVE_ASSET,
    DEFAULT_DECIMALS,
    UNIT_TYPE_NATIVE,
    UNIT_TYPE_TOKEN,
    UNIT_TYPE_PAYMENT_SPLITTER,
)

# Ledger
from .ledger import Ledger, ReceiveHook

# Tokens
from .units.token import (
    create_token_unit,
    mint,
    transfer,
    balance_of,
    total_supply as token_total_supply,
)

# Payment splitter
from .units.payment_splitter import (
    PaymentReleased,
    PaymentReceived,
    create_payment_splitter,
    deploy_payment_splitter,
    total_shares,
    payees,
    payee,
    shares,
    released,
    total_released,
    total_received,
    releasable,
    compute_release,
    release,
    compute_release_all,
    payment_splitter_contract,
    payments_released,
    payments_received,
)

# Lifecycle
from .lifecycle_engine import LifecycleEngine

__all__ = [
    # Core
    'LedgerView', 'SmartContract', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction', 'empty_pending_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult',
    'LedgerError', 'InsufficientFunds', 'BalanceConstraintViolation',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'ReceiveRejected', 'TransferFailure',
    'ConstructionError', 'LengthMismatch', 'NoPayees', 'DuplicatePayee',
    'ZeroAddress', 'ZeroShare',
    'ReleaseError', 'NotAPayee', 'NothingDue', 'IndexOutOfRange',
    'native_currency', 'non_transferable_rule',
    'parse_units', 'format_units', 'parse_ether',
    'SYSTEM_WALLET', 'ZERO_ADDRESS', 'NATIVE_ASSET', 'DEFAULT_DECIMALS',
    'UNIT_TYPE_NATIVE', 'UNIT_TYPE_TOKEN', 'UNIT_TYPE_PAYMENT_SPLITTER',
    # Ledger
    'Ledger', 'ReceiveHook',
    # Tokens
    'create_token_unit', 'mint', 'transfer', 'balance_of', 'token_total_supply',
    # Payment splitter
    'PaymentReleased', 'PaymentReceived',
    'create_payment_splitter', 'deploy_payment_splitter',
    'total_shares', 'payees', 'payee', 'shares', 'released', 'total_released',
    'total_received', 'releasable',
    'compute_release', 'release', 'compute_release_all',
    'payment_splitter_contract', 'payments_released', 'payments_received',
    # Lifecycle
    'LifecycleEngine',
]

__version__ = '1.0.0'
