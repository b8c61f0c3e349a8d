"""Backend registry: maps configured names to registry and clinical-store implementations."""

from __future__ import annotations

import importlib
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from dirsync.config import BackendSpec, SyncConfig
from dirsync.registry import (
    DirectoryRegistry,
    DuckDBFileRegistry,
    GraphqlDirectoryRegistry,
    RestDirectoryRegistry,
)
from dirsync.sources import ClinicalStore, TabularClinicalStore

BackendFactory = Callable[..., Any]


class BackendRole(str, Enum):
    """Collaborator slot a backend fills in a synchronization run."""

    REGISTRY = "registry"
    CLINICAL_STORE = "clinical_store"

    @property
    def interface(self) -> type:
        return DirectoryRegistry if self is BackendRole.REGISTRY else ClinicalStore

    @classmethod
    def of(cls, backend_cls: type) -> "BackendRole":
        """Role implemented by ``backend_cls``, judged by its base class."""

        for role in cls:
            if isinstance(backend_cls, type) and issubclass(backend_cls, role.interface):
                return role
        raise TypeError(
            f"{backend_cls!r} is neither a DirectoryRegistry nor a ClinicalStore"
        )


# Constructor parameters taken from SyncConfig unless the profile sets them.
_CONFIG_DEFAULTS: dict[str, Callable[[SyncConfig], dict[str, Any]]] = {
    RestDirectoryRegistry.name: lambda config: {"timeout": config.request_timeout},
    GraphqlDirectoryRegistry.name: lambda config: {"timeout": config.request_timeout},
    TabularClinicalStore.name: lambda config: (
        {"default_collection_id": config.default_collection_id}
        if config.default_collection_id
        else {}
    ),
}


@dataclass(frozen=True)
class BackendPluginSpec:
    """Backend class imported at runtime; its role follows from its base class."""

    name: str
    module: str
    class_name: str


class BackendRegistry:
    """Named backend factories, kept apart per role.

    A registry client and a clinical store may share a name; a backend is
    only ever created for the role it was registered under, and the created
    object must implement that role's interface.
    """

    def __init__(self) -> None:
        self._factories: dict[BackendRole, dict[str, BackendFactory]] = {role: {} for role in BackendRole}

    def register(self, role: BackendRole, name: str, factory: BackendFactory) -> None:
        key = name.strip().lower()
        if not key:
            raise ValueError("Backend name cannot be empty")
        if key in self._factories[role]:
            raise ValueError(f"{role.value} backend already registered: {name}")
        self._factories[role][key] = factory

    def register_plugin(self, plugin: BackendPluginSpec) -> BackendRole:
        """Import ``plugin`` and register it under the role its class implements."""

        module = importlib.import_module(plugin.module)
        backend_cls = getattr(module, plugin.class_name)
        role = BackendRole.of(backend_cls)
        self.register(role, plugin.name, backend_cls)
        return role

    def create(self, role: BackendRole, name: str, **kwargs: Any) -> Any:
        key = name.strip().lower()
        factories = self._factories[role]
        if key not in factories:
            raise KeyError(
                f"Unknown {role.value} backend '{name}'. Available: {', '.join(self.available(role))}"
            )
        backend = factories[key](**kwargs)
        if not isinstance(backend, role.interface):
            raise TypeError(f"Backend '{name}' does not implement {role.interface.__name__}")
        return backend

    def create_from_spec(self, role: BackendRole, spec: BackendSpec, config: SyncConfig) -> Any:
        """Instantiate ``spec`` with run-wide settings filled in from ``config``."""

        key = spec.name.strip().lower()
        params = dict(_CONFIG_DEFAULTS[key](config)) if key in _CONFIG_DEFAULTS else {}
        params.update(spec.params)
        return self.create(role, key, **params)

    def available(self, role: BackendRole | None = None) -> list[str]:
        roles = [role] if role is not None else list(BackendRole)
        return sorted({name for current in roles for name in self._factories[current]})


def build_default_backend_registry() -> BackendRegistry:
    """Create a registry preloaded with the built-in backends."""

    registry = BackendRegistry()
    for backend_cls in (
        RestDirectoryRegistry,
        GraphqlDirectoryRegistry,
        DuckDBFileRegistry,
        TabularClinicalStore,
    ):
        registry.register(BackendRole.of(backend_cls), backend_cls.name, backend_cls)
    return registry


def build_directory_registry(
    config: SyncConfig,
    backends: BackendRegistry | None = None,
) -> DirectoryRegistry:
    """Instantiate the configured Directory registry client."""

    backends = backends or build_default_backend_registry()
    return backends.create_from_spec(BackendRole.REGISTRY, config.registry, config)


def build_clinical_store(
    config: SyncConfig,
    backends: BackendRegistry | None = None,
) -> ClinicalStore:
    """Instantiate the configured clinical store."""

    backends = backends or build_default_backend_registry()
    return backends.create_from_spec(BackendRole.CLINICAL_STORE, config.clinical_store, config)
