"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the collateralized-debt engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - Every operation is all-or-nothing, transfers included
2. aggregates.py - total_principal equals the sum of positions; supplies balance
3. reentrancy.py - No entry point can be entered while another runs
4. monotonicity.py - Interest grows with time; liquidation only improves health

These tests use hypothesis for property-based testing.
"""
