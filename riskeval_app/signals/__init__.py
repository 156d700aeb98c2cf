"""
Signal evaluation module.

Collects per-source predictions, guards sequence ordering and aggregates
signal dimension scores into a recommendation with a confidence interval.
"""
