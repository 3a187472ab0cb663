"""Terraform-style desired-state reconciliation for REST provider APIs."""

__version__ = "0.1.0"
