"""Constants shared across the updater modules."""

from __future__ import annotations

REQUIRED_TOKEN_COUNT = 7
UPDATE_FAILURE_MARKER_SUFFIX = ".update_failed.json"
LOG_BANNER = "--- Updater Log ---"

TRUE_LITERALS = frozenset({"true"})
FALSE_LITERALS = frozenset({"false"})
