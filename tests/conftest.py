"""
conftest.py - Shared pytest fixtures for splitter tests

Provides common fixtures used across unit, functional and conformance tests:
- A chain ledger with the native currency and funded signers
- A deployed payment splitter with shares [20, 10, 70]
- A WBTC-style token
"""

import pytest

from splitter import create_token_unit, deploy_payment_splitter

from tests.helpers import new_chain, SPLITTER, PAYEES, SHARES, TOKEN


@pytest.fixture
def chain():
    """Ledger with ETH and funded signers, no splitter."""
    return new_chain()


@pytest.fixture
def splitter_ledger(chain):
    """Chain with a splitter deployed for PAYEES / SHARES."""
    deploy_payment_splitter(chain, SPLITTER, PAYEES, SHARES)
    return chain


@pytest.fixture
def token_ledger(splitter_ledger):
    """Splitter ledger with a WBTC-style token registered (nothing minted)."""
    splitter_ledger.register_unit(create_token_unit(TOKEN, "WBTC Token", decimals=8))
    return splitter_ledger
