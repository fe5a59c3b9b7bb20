"""User interfaces for Rulebot."""
