"""Deterministic schema descriptor registry loaded from ``*.yaml`` definitions."""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from importlib import resources
from pathlib import Path
from typing import Final, TypeAlias, cast

import yaml

from coursegen_repair.constants import SCHEMA_DEFINITION_VERSION
from coursegen_repair.schema.descriptor import (
    MISSING,
    ArraySchema,
    EnumSchema,
    FieldSpec,
    JSONValue,
    ObjectSchema,
    PrimitiveSchema,
    PrimitiveType,
    SchemaDescriptor,
)

PathLike: TypeAlias = str | os.PathLike[str]

_PRIMITIVE_TYPES: Final[frozenset[str]] = frozenset(item.value for item in PrimitiveType)
_NODE_KEYS: Final[frozenset[str]] = frozenset(
    {
        "type",
        "ref",
        "items",
        "best_effort",
        "min_items",
        "max_items",
        "fields",
        "values",
        "description",
    }
)
_FIELD_KEYS: Final[frozenset[str]] = _NODE_KEYS | {"required", "default"}
_DOCUMENT_KEYS: Final[frozenset[str]] = frozenset({"schema_version", "definitions"})


class SchemaDefinitionError(ValueError):
    """Raised when descriptor definitions are malformed, duplicated, or cyclic."""


class SchemaRegistry:
    """Named, immutable descriptors shared read-only by every repair attempt."""

    __slots__ = ("_descriptors", "_source_files")

    def __init__(
        self,
        descriptors: Mapping[str, SchemaDescriptor] | None = None,
        *,
        source_files: tuple[Path, ...] = (),
    ) -> None:
        self._descriptors: dict[str, SchemaDescriptor] = {}
        self._source_files = source_files
        for name, descriptor in (descriptors or {}).items():
            self.register(name, descriptor)

    @property
    def source_files(self) -> tuple[Path, ...]:
        return self._source_files

    def register(self, name: str, descriptor: SchemaDescriptor) -> None:
        if not isinstance(name, str) or not name.strip():
            raise SchemaDefinitionError("schema name must be a non-empty string")
        if name in self._descriptors:
            raise SchemaDefinitionError(f"schema already registered: {name!r}")
        self._descriptors[name] = descriptor

    def get(self, name: str) -> SchemaDescriptor:
        try:
            return self._descriptors[name]
        except KeyError:
            known = ", ".join(sorted(self._descriptors)) or "<none>"
            raise KeyError(f"unknown schema {name!r}; registered: {known}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._descriptors)

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._descriptors))

    def merged(self, other: SchemaRegistry) -> SchemaRegistry:
        combined = SchemaRegistry(self._descriptors, source_files=self._source_files)
        for name in other.names():
            combined.register(name, other.get(name))
        combined._source_files = self._source_files + other.source_files
        return combined

    @classmethod
    def from_documents(cls, documents: Mapping[str, object]) -> SchemaRegistry:
        """Build a registry from already-parsed documents keyed by source label."""

        raw_nodes: dict[str, object] = {}
        seen_in: dict[str, str] = {}
        for label in sorted(documents):
            for name, node in _document_definitions(documents[label], label).items():
                first = seen_in.get(name)
                if first is not None:
                    raise SchemaDefinitionError(
                        f"duplicate schema definition {name!r} across {first} and {label}"
                    )
                seen_in[name] = label
                raw_nodes[name] = node

        resolver = _Resolver(raw_nodes)
        return cls({name: resolver.resolve(name) for name in sorted(raw_nodes)})

    @classmethod
    def load(cls, directory: PathLike) -> SchemaRegistry:
        """Load and resolve every ``*.yaml`` definition file in ``directory``."""

        root = Path(directory).expanduser()
        if not root.exists():
            raise FileNotFoundError(f"schema definition directory does not exist: {root}")
        if not root.is_dir():
            raise NotADirectoryError(f"schema definition path is not a directory: {root}")

        files = tuple(sorted(root.glob("*.yaml"), key=lambda path: path.name))
        documents = {path.name: _load_yaml_file(path) for path in files}
        registry = cls.from_documents(documents)
        registry._source_files = files
        return registry

    @classmethod
    def load_builtin(cls) -> SchemaRegistry:
        """Load the definitions shipped with the package."""

        package_dir = resources.files("coursegen_repair.schema").joinpath("definitions")
        documents: dict[str, object] = {}
        for entry in sorted(package_dir.iterdir(), key=lambda item: item.name):
            if not entry.name.endswith(".yaml"):
                continue
            try:
                documents[entry.name] = yaml.safe_load(entry.read_text(encoding="utf-8"))
            except yaml.YAMLError as exc:
                raise SchemaDefinitionError(f"{entry.name}: invalid YAML ({exc})") from exc
        return cls.from_documents(documents)


class _Resolver:
    """Depth-first resolution of ``ref`` nodes; a revisited name on the stack is a cycle."""

    def __init__(self, raw_nodes: Mapping[str, object]) -> None:
        self._raw = raw_nodes
        self._resolved: dict[str, SchemaDescriptor] = {}
        self._stack: list[str] = []

    def resolve(self, name: str) -> SchemaDescriptor:
        cached = self._resolved.get(name)
        if cached is not None:
            return cached
        if name in self._stack:
            cycle = " -> ".join([*self._stack[self._stack.index(name) :], name])
            raise SchemaDefinitionError(f"schema reference cycle: {cycle}")
        if name not in self._raw:
            raise SchemaDefinitionError(f"unknown schema reference: {name!r}")

        self._stack.append(name)
        try:
            descriptor = self._parse_node(self._raw[name], name, allowed_keys=_NODE_KEYS)
        finally:
            self._stack.pop()
        self._resolved[name] = descriptor
        return descriptor

    def _parse_node(
        self,
        node: object,
        path: str,
        *,
        allowed_keys: frozenset[str],
    ) -> SchemaDescriptor:
        if isinstance(node, str):
            node = {"type": node}
        data = _as_mapping(node, path)
        _reject_unknown_keys(data, allowed_keys, path)

        description = data.get("description")
        if description is not None and not isinstance(description, str):
            raise SchemaDefinitionError(f"{path}.description: expected string")

        if "ref" in data:
            if "type" in data:
                raise SchemaDefinitionError(f"{path}: set only one of 'ref' or 'type'")
            ref = data["ref"]
            if not isinstance(ref, str) or not ref:
                raise SchemaDefinitionError(f"{path}.ref: expected schema name")
            return self.resolve(ref)

        kind = data.get("type")
        if not isinstance(kind, str):
            raise SchemaDefinitionError(f"{path}: missing 'type' or 'ref'")

        if kind in _PRIMITIVE_TYPES:
            return PrimitiveSchema(PrimitiveType(kind), description=description)

        if kind == "enum":
            values = data.get("values")
            if not isinstance(values, list) or not all(isinstance(item, str) for item in values):
                raise SchemaDefinitionError(f"{path}.values: expected list of strings")
            try:
                return EnumSchema(tuple(values), description=description)
            except ValueError as exc:
                raise SchemaDefinitionError(f"{path}: {exc}") from exc

        if kind == "array":
            if "items" not in data:
                raise SchemaDefinitionError(f"{path}: array requires 'items'")
            best_effort = data.get("best_effort", False)
            if not isinstance(best_effort, bool):
                raise SchemaDefinitionError(f"{path}.best_effort: expected bool")
            items = self._parse_node(data["items"], f"{path}.items", allowed_keys=_NODE_KEYS)
            try:
                return ArraySchema(
                    items,
                    best_effort=best_effort,
                    min_items=cast("int | None", data.get("min_items")),
                    max_items=cast("int | None", data.get("max_items")),
                    description=description,
                )
            except (TypeError, ValueError) as exc:
                raise SchemaDefinitionError(f"{path}: {exc}") from exc

        if kind == "object":
            raw_fields = _as_mapping(data.get("fields", {}), f"{path}.fields")
            fields: dict[str, FieldSpec] = {}
            for field_name, field_node in raw_fields.items():
                fields[field_name] = self._parse_field(field_node, f"{path}.{field_name}")
            return ObjectSchema(fields, description=description)

        raise SchemaDefinitionError(f"{path}: unsupported type {kind!r}")

    def _parse_field(self, node: object, path: str) -> FieldSpec:
        if isinstance(node, str):
            node = {"type": node}
        data = _as_mapping(node, path)
        _reject_unknown_keys(data, _FIELD_KEYS, path)
        required = data.get("required", True)
        if not isinstance(required, bool):
            raise SchemaDefinitionError(f"{path}.required: expected bool")
        schema = self._parse_node(
            {key: value for key, value in data.items() if key not in {"required", "default"}},
            path,
            allowed_keys=_NODE_KEYS,
        )
        default = cast("JSONValue", data["default"]) if "default" in data else MISSING
        return FieldSpec(schema, required=required, default=default)


def _document_definitions(document: object, label: str) -> dict[str, object]:
    data = _as_mapping(document, label)
    _reject_unknown_keys(data, _DOCUMENT_KEYS, label)
    version = data.get("schema_version")
    if version != SCHEMA_DEFINITION_VERSION:
        raise SchemaDefinitionError(
            f"{label}: unsupported schema_version {version!r}; expected {SCHEMA_DEFINITION_VERSION}"
        )
    return dict(_as_mapping(data.get("definitions", {}), f"{label}.definitions"))


def _load_yaml_file(path: Path) -> object:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise SchemaDefinitionError(f"{path}: invalid YAML ({exc})") from exc


def _as_mapping(value: object, path: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        raise SchemaDefinitionError(f"{path}: expected object, got {type(value).__name__}")
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise SchemaDefinitionError(f"{path}: object keys must be strings")
        out[key] = item
    return out


def _reject_unknown_keys(data: Mapping[str, object], allowed: frozenset[str], path: str) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise SchemaDefinitionError(f"{path}: unexpected keys: {unknown}")


__all__ = ["SchemaDefinitionError", "SchemaRegistry"]
