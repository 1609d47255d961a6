"""Core game rules and data structures."""

from . import errors, fsm, roles, rulesets, schemas

__all__ = ["errors", "fsm", "roles", "rulesets", "schemas"]
