"""Clinical data store readers."""

from .base import ClinicalStore
from .tabular import DEFAULT_COLUMNS, TabularClinicalStore

__all__ = ["ClinicalStore", "DEFAULT_COLUMNS", "TabularClinicalStore"]
