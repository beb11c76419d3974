from __future__ import annotations


class ConfigError(ValueError):
    """Raised when LSTMP inputs or options violate the operator contract."""
