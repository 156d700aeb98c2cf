"""
Utility functions module.

Time Semantics:
- Input timestamps (signals, snapshots, market context) are authoritative
- Planner output timestamps are derived from inputs, never the wall clock
- Wall-clock time is used for emission stamps and latency monitoring only
"""
