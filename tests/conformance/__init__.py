"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the payment splitter.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Held plus released equals received; ledger sums to zero
2. proportionality.py - Steady-state payouts are floor(received * share / total)
3. atomicity.py - Failed releases change nothing
4. idempotency.py - Retried releases never pay twice; replay is deterministic

These tests use hypothesis for property-based testing.
"""
