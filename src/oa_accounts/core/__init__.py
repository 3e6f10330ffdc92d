"""Core utilities shared across oa-accounts."""
