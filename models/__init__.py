"""Shared domain vocabulary."""
