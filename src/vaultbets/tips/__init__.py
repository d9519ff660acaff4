"""Tip domain: bet types, fixture prioritization, admission policy and analysis derivation."""
