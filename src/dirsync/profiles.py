"""Sync profile loader: JSON run configurations validated with JSON Schema."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from jsonschema import FormatChecker
from jsonschema.validators import validator_for

from dirsync.config import (
    DEFAULT_AGE_BRACKETS,
    DEFAULT_MATERIAL_ALIASES,
    AgeBracket,
    BackendSpec,
    SyncConfig,
)
from dirsync.errors import ConfigurationError

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_PROFILES_DIR = PROJECT_ROOT / "config" / "profiles"
DEFAULT_SCHEMA_PATH = PROJECT_ROOT / "schemas" / "sync_profile.schema.json"

CREDENTIAL_ENV = {
    "base_url": "DS_DIRECTORY_URL",
    "username": "DS_DIRECTORY_USER_NAME",
    "password": "DS_DIRECTORY_USER_PASS",
}
_REMOTE_BACKENDS = frozenset({"rest", "graphql"})
# Unset variables expand to an empty string.
_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class SyncProfile:
    """Named, serializable run configuration."""

    name: str
    description: str
    config: SyncConfig


class SyncProfileLoader:
    """Load sync profiles from ``config/profiles`` or a custom path."""

    def __init__(
        self,
        profiles_dir: str | Path | None = None,
        schema_path: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.profiles_dir = Path(profiles_dir) if profiles_dir is not None else DEFAULT_PROFILES_DIR
        self.schema_path = Path(schema_path) if schema_path is not None else DEFAULT_SCHEMA_PATH
        self.environ = os.environ if environ is None else environ
        self._validator: Any = None

    def list_profiles(self) -> list[str]:
        """Return available profile names from the configured profile directory."""

        return sorted(path.stem for path in self.profiles_dir.glob("*.json"))

    def load(self, name_or_path: str | Path) -> SyncProfile:
        """Load a profile by name (for example, ``default``) or explicit path."""

        path = self._resolve_path(name_or_path)
        try:
            payload = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Profile {path} is not valid JSON: {exc}") from exc
        self.validate(payload, source=str(path))
        return self._parse(payload)

    def validate(self, payload: Any, *, source: str = "<profile>") -> None:
        """Raise :class:`ConfigurationError` listing every schema violation."""

        errors = sorted(self._compiled_validator().iter_errors(payload), key=lambda err: list(err.path))
        if errors:
            details = "; ".join(
                f"/{'/'.join(str(part) for part in error.path)}: {error.message}" for error in errors
            )
            raise ConfigurationError(f"Invalid profile {source}: {details}")

    def _compiled_validator(self) -> Any:
        if self._validator is None:
            schema = json.loads(self.schema_path.read_text())
            validator_cls = validator_for(schema)
            validator_cls.check_schema(schema)
            self._validator = validator_cls(schema, format_checker=FormatChecker())
        return self._validator

    def _resolve_path(self, name_or_path: str | Path) -> Path:
        requested = Path(name_or_path)

        if requested.exists():
            return requested

        candidate = self.profiles_dir / f"{requested}.json"
        if candidate.exists():
            return candidate

        raise FileNotFoundError(
            f"Profile not found: {name_or_path}. Available: {', '.join(self.list_profiles())}"
        )

    def _parse(self, payload: dict[str, Any]) -> SyncProfile:
        policy = payload.get("policy", {})
        retry = payload.get("retry", {})

        age_brackets = DEFAULT_AGE_BRACKETS
        if "age_brackets" in payload:
            age_brackets = tuple(
                AgeBracket(label=str(item["label"]), upper_bound=item.get("upper_bound"))
                for item in payload["age_brackets"]
            )

        material_aliases = dict(DEFAULT_MATERIAL_ALIASES)
        for source, target in payload.get("material_aliases", {}).items():
            material_aliases[source.upper().replace("-", "_")] = target

        try:
            config = SyncConfig(
                registry=self._backend(payload["registry"], remote_credentials=True),
                clinical_store=self._backend(payload["clinical_store"]),
                min_donors=int(policy.get("min_donors", 10)),
                max_facts=int(policy.get("max_facts", -1)),
                allow_star_model=bool(policy.get("allow_star_model", True)),
                update_collections=bool(policy.get("update_collections", True)),
                update_biobanks=bool(policy.get("update_biobanks", True)),
                default_collection_id=policy.get("default_collection_id"),
                retry_max=int(retry.get("max", 3)),
                retry_interval=float(retry.get("interval", 20)),
                request_timeout=float(payload.get("request_timeout", 30)),
                fact_batch_size=int(payload.get("fact_batch_size", 1000)),
                age_brackets=age_brackets,
                material_aliases=material_aliases,
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        return SyncProfile(
            name=str(payload["name"]),
            description=str(payload.get("description", "")),
            config=config,
        )

    def _backend(self, raw: Mapping[str, Any], *, remote_credentials: bool = False) -> BackendSpec:
        name = str(raw["backend"]).strip().lower()
        params = {key: self._expand(value) for key, value in raw.get("params", {}).items()}
        if remote_credentials and name in _REMOTE_BACKENDS:
            for param, variable in CREDENTIAL_ENV.items():
                if not params.get(param) and self.environ.get(variable):
                    params[param] = self.environ[variable]
            if not params.get("base_url"):
                raise ConfigurationError(
                    f"Registry backend '{name}' needs base_url (or {CREDENTIAL_ENV['base_url']})"
                )
        return BackendSpec(name=name, params=params)

    def _expand(self, value: Any) -> Any:
        if isinstance(value, str):
            expanded = _ENV_REFERENCE.sub(lambda match: self.environ.get(match.group(1), ""), value)
            return os.path.expanduser(expanded) if expanded else expanded
        if isinstance(value, list):
            return [self._expand(item) for item in value]
        if isinstance(value, dict):
            return {key: self._expand(item) for key, item in value.items()}
        return value
