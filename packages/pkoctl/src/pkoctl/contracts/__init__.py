"""JSON schemas for settings and command reports."""

from __future__ import annotations

from .json_output import SCHEMA_DIR, load_schema, schema_errors, validate_payload

__all__ = ["SCHEMA_DIR", "load_schema", "schema_errors", "validate_payload"]
