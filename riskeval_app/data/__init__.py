"""
Input normalization module.

Converts raw tick, prediction, snapshot and tolerance payloads into the
immutable models the engine consumes.
"""
