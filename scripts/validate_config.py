#!/usr/bin/env python3
"""Configuration validation script."""

import argparse
import sys
from pathlib import Path
from typing import Optional

from riskeval_app.config.loader import ConfigLoader
from riskeval_app.config.validation import ConfigIssue, ConfigValidator
from riskeval_app.errors import ConfigurationError, ValidationError


def validate_portfolio_config(loader: ConfigLoader, portfolio_id: str,
                              overrides: Optional[dict] = None) -> list[ConfigIssue]:
    """Validate the merged configuration for a specific portfolio."""
    config = loader.merge_config(portfolio_id, overrides)
    issues = ConfigValidator.validate_config(config)
    if not issues:
        # Also catches unknown keys and tolerance levels
        try:
            loader.tolerance_for(portfolio_id, overrides)
        except ValidationError as e:
            issues.append(ConfigIssue(e.field or "config", str(e), e.value))
    return issues


def main(argv: Optional[list[str]] = None) -> int:
    """Main validation function."""
    parser = argparse.ArgumentParser(description="Validate riskeval portfolio configuration")
    parser.add_argument("--config-dir", type=Path, default=None,
                        help="Directory holding portfolios.yaml and engine.yaml")
    args = parser.parse_args(argv)

    print("Validating riskeval configuration...")

    loader = ConfigLoader.create(args.config_dir)
    try:
        portfolios = loader.portfolio_ids()
        loader.coordinator_params()
        loader.audit_params()
        loader.delivery_config()
    except (ConfigurationError, ValidationError) as e:
        print(f"FAIL engine configuration: {e}")
        return 1

    all_valid = True

    # Unknown portfolios fall back to defaults
    for portfolio_id in [*portfolios, "unknown-portfolio"]:
        issues = validate_portfolio_config(loader, portfolio_id)
        if issues:
            print(f"FAIL {portfolio_id}: {len(issues)} issue(s)")
            for issue in issues:
                print(f"  - {issue.field}: {issue.message} (value: {issue.value})")
            all_valid = False
        else:
            print(f"ok   {portfolio_id}")

    # Request-level overrides in the inbound shape
    request_overrides = {
        "tolerance_level": "aggressive",
        "thresholds": {"recommendation": {"strong_buy": 0.85}},
    }
    for portfolio_id in portfolios:
        issues = validate_portfolio_config(loader, portfolio_id, request_overrides)
        if issues:
            print(f"FAIL {portfolio_id} with request overrides")
            for issue in issues:
                print(f"  - {issue.field}: {issue.message}")
            all_valid = False

    if all_valid:
        print("All configuration validation passed")
        return 0
    print("Configuration validation failed")
    return 1


if __name__ == "__main__":
    sys.exit(main())
