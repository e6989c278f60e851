"""
Exceptions raised across the package
"""


class GenerationError(RuntimeError):
    """A remote generation call failed (transport or model)."""


class ImportValidationError(ValueError):
    """An import payload is not a valid backup; nothing was written."""


class StoreError(RuntimeError):
    """The key-value backend could not persist a value."""
