"""
Units module - Factory functions and contracts for ledger units.

This module provides:
- Fungible tokens (ERC20-style) and transfers of any fungible asset
- The payment splitter contract

All unit factories and related functions are re-exported here for convenience.
"""

# Tokens and transfers
from .token import (
    create_token_unit,
    mint,
    transfer,
    balance_of,
    total_supply as token_total_supply,
)

# Payment splitter
from .payment_splitter import (
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

__all__ = [
    # Tokens
    'create_token_unit',
    'mint',
    'transfer',
    'balance_of',
    'token_total_supply',
    # Payment splitter
    'PaymentReleased',
    'PaymentReceived',
    'create_payment_splitter',
    'deploy_payment_splitter',
    'total_shares',
    'payees',
    'payee',
    'shares',
    'released',
    'total_released',
    'total_received',
    'releasable',
    'compute_release',
    'release',
    'compute_release_all',
    'payment_splitter_contract',
    'payments_released',
    'payments_received',
]
