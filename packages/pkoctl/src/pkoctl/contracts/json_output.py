from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

import jsonschema

from ..errors import ScriptError

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"


@lru_cache(maxsize=None)
def load_schema(name: str) -> dict[str, object]:
    return json.loads((SCHEMA_DIR / name).read_text(encoding="utf-8"))


def schema_errors(payload: object, schema_name: str) -> list[str]:
    validator = jsonschema.Draft202012Validator(load_schema(schema_name))
    errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.path))
    out: list[str] = []
    for err in errors:
        where = ".".join(str(part) for part in err.path) or "<root>"
        out.append(f"{where}: {err.message}")
    return out


def validate_payload(payload: dict[str, object], schema_name: str) -> None:
    errors = schema_errors(payload, schema_name)
    if errors:
        raise ScriptError(f"json output validation failed ({schema_name}): {errors[0]}", kind="contract")
