"""JSON Schemas for profile, rule and waiver documents.

These cover structure only (fields, types, ranges). Cross-references such as
accessor kinds, matcher names and parameter references are checked by the
loader afterwards so every problem is reported with a precise message.
"""

from __future__ import annotations

SCHEMA_DIALECT = "https://json-schema.org/draft/2020-12/schema"

ASSERTION_SCHEMA: dict = {
    "type": "object",
    "required": ["kind", "selector", "matcher"],
    "additionalProperties": False,
    "properties": {
        "kind": {"type": "string", "minLength": 1},
        "selector": {"type": ["string", "integer", "object"]},
        "property": {"type": "string", "minLength": 1},
        "matcher": {"type": "string", "minLength": 1},
        "expected": {},
        "description": {"type": "string"},
    },
}

RULE_SCHEMA: dict = {
    "$schema": SCHEMA_DIALECT,
    "title": "Compliance rule",
    "type": "object",
    "required": ["id", "title", "assertions"],
    "additionalProperties": False,
    "properties": {
        "id": {"type": "string", "pattern": "^[A-Za-z0-9][A-Za-z0-9._-]*$"},
        "title": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "severity": {"type": "number", "minimum": 0.0, "maximum": 1.0},
        "tags": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
        "only_if": {},
        "assertions": {"type": "array", "items": ASSERTION_SCHEMA},
    },
}

PROFILE_SCHEMA: dict = {
    "$schema": SCHEMA_DIALECT,
    "title": "Compliance profile",
    "type": "object",
    "required": ["name"],
    "additionalProperties": False,
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "title": {"type": "string"},
        "version": {"type": ["string", "number"]},
        "maintainer": {"type": "string"},
        "summary": {"type": "string"},
        "license": {"type": "string"},
        "parameters": {"type": "object"},
    },
}

# YAML turns unquoted dates into date objects, so expiry is left untyped here
# and parsed by the waiver loader.
WAIVER_SCHEMA: dict = {
    "$schema": SCHEMA_DIALECT,
    "title": "Waiver table",
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "required": ["justification"],
        "additionalProperties": False,
        "properties": {
            "active": {"type": "boolean"},
            "justification": {"type": "string", "minLength": 1},
            "approver": {"type": "string"},
            "expiry": {},
        },
    },
}
