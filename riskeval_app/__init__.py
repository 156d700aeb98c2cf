"""
RiskEval App - Risk-Adjusted Signal Evaluation and Mitigation Engine

Scores per-source cryptocurrency trading signals, assesses live portfolio
risk across five dimensions and produces deterministic, auditable
risk-mitigation plans under a strict latency budget.
"""

__version__ = "0.1.0"
__author__ = "RiskEval Team"
