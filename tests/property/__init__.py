"""Property-based tests using Hypothesis.

These tests use generative testing to explore edge cases:
- Page slicing and metadata clamping over arbitrary collections
- Checksum stability under reordering

To run property tests:
    pytest tests/property/ -v --hypothesis-show-statistics

Requires:
    hypothesis>=6.100.0
"""
