"""Exception types raised by Directory Sync."""

from __future__ import annotations


class DirectorySyncError(RuntimeError):
    """Base class for errors that abort a synchronization stage."""


class ConfigurationError(DirectorySyncError):
    """Raised when a sync profile is missing, malformed or fails schema validation."""


class ClinicalStoreError(DirectorySyncError):
    """Raised when the clinical data store cannot deliver rows or diagnoses."""


class RegistryError(DirectorySyncError):
    """Raised when the Directory cannot be used at all (for example, login failed)."""
