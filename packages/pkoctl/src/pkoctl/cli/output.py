"""CLI payload output helpers."""

from __future__ import annotations

import json


def dumps_json(payload: object, pretty: bool = True) -> str:
    if pretty:
        return json.dumps(payload, indent=2, sort_keys=True)
    return json.dumps(payload, sort_keys=True)


def emit(payload: dict[str, object], as_json: bool) -> None:
    print(dumps_json(payload, pretty=not as_json))


def version_payload(version: str) -> dict[str, object]:
    return {"schema_version": 1, "tool": "pkoctl", "status": "ok", "version": version}


def render_error(*, as_json: bool, message: str, code: int, kind: str = "generic_error") -> str:
    if as_json:
        return dumps_json(
            {
                "schema_version": 1,
                "tool": "pkoctl",
                "status": "error",
                "errors": [{"code": code, "kind": kind, "message": message}],
            },
            pretty=False,
        )
    return message
