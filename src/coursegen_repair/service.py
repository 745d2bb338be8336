"""
coursegen-repair — runtime wiring

File: src/coursegen_repair/service.py
Last updated: 2026-02-12

Purpose
- Turn a validated config mapping into ready-to-use pipeline, registry and log objects.

Functional requirements
- Layer 2 is wired only when ``repack.enabled`` is set and a repack model resolves,
  either from ``repack.model`` or from the providers whose API-key env var is set.
- No network or SDK access happens here; adapters are built lazily by the registry.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from coursegen_repair.persistence.repositories import GenerationLogRepo
from coursegen_repair.persistence.state_db import StateDB
from coursegen_repair.providers.factory import available_providers, build_provider_registry
from coursegen_repair.providers.model_registry import select_repack_model
from coursegen_repair.repair.debug_dump import DebugDumpSink
from coursegen_repair.repair.pipeline import RepairPipeline
from coursegen_repair.repair.repack import ModelRepacker
from coursegen_repair.schema.registry import SchemaRegistry


def api_key_envs(config: Mapping[str, Any]) -> dict[str, str]:
    providers = config.get("providers") or {}
    return {
        name: settings["api_key_env"]
        for name, settings in sorted(providers.items())
        if isinstance(settings, Mapping) and "api_key_env" in settings
    }


def resolve_repack_model(
    config: Mapping[str, Any],
    *,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    repack = config["repack"]
    if not repack["enabled"]:
        return None
    if repack.get("model"):
        return str(repack["model"])
    return select_repack_model(available_providers(api_key_envs(config), environ=environ))


def build_repair_pipeline(
    config: Mapping[str, Any],
    *,
    environ: Mapping[str, str] | None = None,
    logger: Any | None = None,
) -> RepairPipeline:
    log = logger if logger is not None else structlog.get_logger(__name__)
    repair = config["repair"]
    dump_sink = DebugDumpSink(
        repair["debug_dump_dir"],
        enabled=repair["debug_dumps"],
        logger=log,
    )

    repack_model = resolve_repack_model(config, environ=environ)
    repacker: ModelRepacker | None = None
    if repack_model is not None:
        repack = config["repack"]
        registry = build_provider_registry(
            api_key_envs(config),
            max_retries=repack["max_retries"],
            timeout_seconds=repack["timeout_seconds"],
        )
        repacker = ModelRepacker(registry, timeout_seconds=repack["timeout_seconds"], logger=log)

    log.debug(
        "repair_pipeline_built",
        repack_model=repack_model,
        debug_dumps=dump_sink.enabled,
    )
    return RepairPipeline(
        repacker=repacker,
        repack_model=repack_model,
        dump_sink=dump_sink,
        logger=log,
    )


def load_schema_registry(config: Mapping[str, Any]) -> SchemaRegistry:
    """Built-in descriptors plus any from ``paths.schema_dir``; duplicate names are rejected."""

    registry = SchemaRegistry.load_builtin()
    schema_dir = config["paths"].get("schema_dir")
    if schema_dir:
        registry = registry.merged(SchemaRegistry.load(Path(schema_dir)))
    return registry


def open_generation_log_repo(
    config: Mapping[str, Any],
    *,
    state_db: str | Path | None = None,
) -> GenerationLogRepo:
    path = state_db if state_db is not None else config["paths"]["state_db"]
    return GenerationLogRepo(StateDB(path))


__all__ = [
    "api_key_envs",
    "build_repair_pipeline",
    "load_schema_registry",
    "open_generation_log_repo",
    "resolve_repack_model",
]
