#!/usr/bin/env python3
"""Run a Directory synchronization from a JSON sync profile."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from dirsync import (  # noqa: E402
    BackendPluginSpec,
    ConfigurationError,
    SyncProfileLoader,
    build_clinical_store,
    build_default_backend_registry,
    build_directory_registry,
    run_with_failover,
)

logger = logging.getLogger("dirsync.run_sync")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronize a biobank with the BBMRI-ERIC Directory")
    parser.add_argument(
        "--profile",
        default="default",
        help="Profile name under config/profiles or path to a profile JSON file",
    )
    parser.add_argument("--profiles-dir", default=None, help="Directory holding named profiles")
    parser.add_argument(
        "--plugin",
        action="append",
        default=[],
        metavar="NAME=MODULE:CLASS",
        help="Register an extra registry or clinical-store backend (repeatable)",
    )
    parser.add_argument("--once", action="store_true", help="Make a single attempt, without retries")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def parse_plugin(raw: str) -> BackendPluginSpec:
    name, _, target = raw.partition("=")
    module, _, class_name = target.partition(":")
    if not name or not module or not class_name:
        raise ValueError(f"Plugin must look like NAME=MODULE:CLASS, got {raw!r}")
    return BackendPluginSpec(name=name, module=module, class_name=class_name)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        profile = SyncProfileLoader(profiles_dir=args.profiles_dir).load(args.profile)
    except (ConfigurationError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1

    config = profile.config
    if args.once:
        config = dataclasses.replace(config, retry_max=1)

    backends = build_default_backend_registry()
    for raw in args.plugin:
        backends.register_plugin(parse_plugin(raw))

    registry = build_directory_registry(config, backends)
    clinical_store = build_clinical_store(config, backends)
    try:
        report = run_with_failover(config=config, registry=registry, clinical_store=clinical_store)
    finally:
        registry.close()

    payload = {"profile": profile.name, **report.to_dict()}
    print(json.dumps(payload, indent=2))
    return 0 if report.succeeded else 1


if __name__ == "__main__":
    raise SystemExit(main())
