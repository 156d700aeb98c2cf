"""
Portfolio risk assessment module.

Maintains per-portfolio exposure books and aggregates the five risk
dimensions into an overall score and a discrete risk level.
"""
