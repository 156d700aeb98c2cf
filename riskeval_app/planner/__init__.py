"""
Decision and mitigation planner module.

Builds risk-level gated mitigation plans and drives the planning cycle
state machine EVALUATE -> MITIGATE -> (EXECUTE ->) AUDIT.
"""
