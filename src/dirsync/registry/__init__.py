"""Directory registry clients."""

from .base import DirectoryRegistry
from .duckdb_file import DuckDBFileRegistry
from .graphql import GraphqlDirectoryRegistry
from .rest import RestDirectoryRegistry

__all__ = [
    "DirectoryRegistry",
    "DuckDBFileRegistry",
    "GraphqlDirectoryRegistry",
    "RestDirectoryRegistry",
]
