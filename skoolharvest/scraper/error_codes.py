from __future__ import annotations

"""Centralised error code taxonomy for harvest failures.

These codes are attached to every ``HarvestError`` and included in structured
logs so that a failed checkpoint can be traced back to its cause.
"""


class ErrorCode:
    AUTH_SETUP = "auth_setup"
    NO_ITEMS_FOUND = "no_items_found"
    PERSISTENCE = "persistence_error"
    NAVIGATION = "navigation_error"
    FIELD_EXTRACTION = "field_extraction"
    CONFIG_INVALID = "config_invalid"
    INTERNAL = "internal_error"


__all__ = ["ErrorCode"]
