"""Entitlement export and redemption tooling."""
