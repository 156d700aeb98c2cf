"""
Data models and contracts module.

Immutable data structures for trading signals, portfolio snapshots, scores,
mitigation plans and the market context analyzers read from.
"""
