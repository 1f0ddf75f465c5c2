"""Sandbox infrastructure: environment-aware naming and CDK stacks."""
