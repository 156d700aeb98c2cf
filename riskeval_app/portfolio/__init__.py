"""Portfolio store boundary and version-checked plan execution."""
