"""Schema descriptors, the YAML-backed registry, and strict validation."""

from coursegen_repair.schema.descriptor import (
    BOOLEAN,
    INTEGER,
    MISSING,
    NUMBER,
    STRING,
    ArraySchema,
    EnumSchema,
    FieldSpec,
    ObjectSchema,
    PrimitiveSchema,
    PrimitiveType,
    SchemaDescriptor,
    SchemaKind,
    object_schema,
    to_json_schema,
)
from coursegen_repair.schema.registry import SchemaDefinitionError, SchemaRegistry
from coursegen_repair.schema.validation import (
    IssueCode,
    ValidationIssue,
    format_issues,
    is_valid,
    validate_value,
)

__all__ = [
    "BOOLEAN",
    "INTEGER",
    "MISSING",
    "NUMBER",
    "STRING",
    "ArraySchema",
    "EnumSchema",
    "FieldSpec",
    "IssueCode",
    "ObjectSchema",
    "PrimitiveSchema",
    "PrimitiveType",
    "SchemaDefinitionError",
    "SchemaDescriptor",
    "SchemaKind",
    "SchemaRegistry",
    "ValidationIssue",
    "format_issues",
    "is_valid",
    "object_schema",
    "to_json_schema",
    "validate_value",
]
