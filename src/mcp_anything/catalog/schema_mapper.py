"""Map OpenAPI parameters and request bodies onto one tool input schema."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

LOCATIONS = ("path", "query", "header", "cookie", "body")

_DEFAULT_SCHEMA: dict[str, Any] = {"type": "string"}
_MAX_REF_DEPTH = 15


@dataclass(frozen=True)
class SchemaField:
    """One tool argument and where it travels in the outbound request."""

    name: str
    type: str
    location: str
    description: str = ""
    schema: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class InputSchema:
    """Structured argument contract of a tool.

    ``required`` is ``None`` when nothing is required; an empty frozenset
    means the same thing and both normalise through :attr:`required_names`.
    """

    fields: dict[str, SchemaField] = field(default_factory=dict)
    required: frozenset[str] | None = None
    body_schema: dict[str, Any] | None = None
    body_required: bool = False

    @property
    def required_names(self) -> frozenset[str]:
        return self.required or frozenset()

    def location_of(self, name: str) -> str | None:
        f = self.fields.get(name)
        return f.location if f else None

    def names_at(self, location: str) -> list[str]:
        return [n for n, f in self.fields.items() if f.location == location]

    def missing_required(self, arguments: dict[str, Any]) -> list[str]:
        """Required names absent (or ``None``) in *arguments*, sorted."""
        return sorted(n for n in self.required_names if arguments.get(n) is None)


# ----------------------------------------------------------------------
# $ref resolution
# ----------------------------------------------------------------------


class RefResolver:
    """Resolve local ``#/...`` references against the whole document."""

    def __init__(self, document: dict[str, Any] | None = None):
        self.document = document or {}

    def resolve(self, obj: Any, _depth: int = 0) -> Any:
        """Follow ``$ref`` chains on *obj* (shallow)."""
        while isinstance(obj, dict) and "$ref" in obj and _depth <= _MAX_REF_DEPTH:
            target = self._lookup(obj["$ref"])
            if target is None:
                logger.warning("Unresolvable $ref", ref=obj["$ref"])
                return {k: v for k, v in obj.items() if k != "$ref"}
            obj = target
            _depth += 1
        return obj

    def resolve_schema(
        self,
        schema: Any,
        _depth: int = 0,
        _expanding: frozenset[str] = frozenset(),
    ) -> dict[str, Any]:
        """Resolve *schema* and its nested properties/items/combinators.

        A ``$ref`` already being expanded further up the current branch is
        rendered as an opaque ``{"type": "object"}``, so recursive schemas
        (trees, linked lists) stop after one level.
        """
        if not isinstance(schema, dict):
            return dict(_DEFAULT_SCHEMA)

        while "$ref" in schema:
            ref = schema["$ref"]
            target = self._lookup(ref)
            if _depth > _MAX_REF_DEPTH or (isinstance(ref, str) and ref in _expanding):
                logger.debug("Recursive $ref truncated", ref=ref, depth=_depth)
                return _opaque({**target, **schema} if isinstance(target, dict) else schema)
            if not isinstance(target, dict):
                logger.warning("Unresolvable $ref", ref=ref)
                return {k: v for k, v in schema.items() if k != "$ref"}
            _expanding = _expanding | {ref}
            _depth += 1
            schema = target
        if _depth > _MAX_REF_DEPTH:
            return _opaque(schema)

        result = dict(schema)
        if isinstance(result.get("properties"), dict):
            result["properties"] = {
                k: self.resolve_schema(v, _depth + 1, _expanding)
                for k, v in result["properties"].items()
            }
        if isinstance(result.get("items"), dict):
            result["items"] = self.resolve_schema(result["items"], _depth + 1, _expanding)
        for combo_key in ("allOf", "anyOf", "oneOf"):
            if isinstance(result.get(combo_key), list):
                result[combo_key] = [
                    self.resolve_schema(s, _depth + 1, _expanding) for s in result[combo_key]
                ]
        return result

    def _lookup(self, ref: Any) -> Any:
        if not isinstance(ref, str) or not ref.startswith("#/"):
            return None
        node: Any = self.document
        for part in ref[2:].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node


def _opaque(schema: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {"type": "object"}
    if isinstance(schema.get("description"), str):
        result["description"] = schema["description"]
    return result


# ----------------------------------------------------------------------
# Mapping
# ----------------------------------------------------------------------


def map_parameters(
    parameters: list[Any],
    request_body: dict[str, Any] | None = None,
    resolver: RefResolver | None = None,
) -> InputSchema:
    """Convert parameter descriptors (plus an optional request body) into
    an :class:`InputSchema`."""
    resolver = resolver or RefResolver()
    fields: dict[str, SchemaField] = {}
    required: list[str] = []

    for raw in parameters:
        param = resolver.resolve(raw)
        if not isinstance(param, dict) or not isinstance(param.get("name"), str):
            logger.warning("Skipping malformed parameter", parameter=raw)
            continue
        name = param["name"]
        if name in fields:
            continue

        location = param.get("in", "query")
        if location not in LOCATIONS or location == "body":
            location = "query"
        schema = resolver.resolve_schema(param.get("schema", _DEFAULT_SCHEMA))
        fields[name] = SchemaField(
            name=name,
            type=_type_of(schema),
            location=location,
            description=param.get("description") or schema.get("description", ""),
            schema=schema,
        )
        # Path parameters are always required, whatever the document says.
        if param.get("required", False) or location == "path":
            required.append(name)

    body_schema, body_required = _map_request_body(request_body, resolver)
    if body_schema is not None:
        for prop_name, prop_schema in body_schema.get("properties", {}).items():
            if prop_name in fields or not isinstance(prop_schema, dict):
                continue
            fields[prop_name] = SchemaField(
                name=prop_name,
                type=_type_of(prop_schema),
                location="body",
                description=prop_schema.get("description", ""),
                schema=prop_schema,
            )

    return InputSchema(
        fields=fields,
        required=frozenset(required) if required else None,
        body_schema=body_schema,
        body_required=body_required,
    )


def _map_request_body(
    request_body: dict[str, Any] | None,
    resolver: RefResolver,
) -> tuple[dict[str, Any] | None, bool]:
    body = resolver.resolve(request_body)
    if not isinstance(body, dict):
        return None, False
    content = body.get("content")
    if not isinstance(content, dict):
        return None, False

    for media_type, media in content.items():
        if _is_json_media_type(media_type) and isinstance(media, dict):
            schema = media.get("schema")
            if schema is None:
                return None, False
            return resolver.resolve_schema(schema), bool(body.get("required", False))
    return None, False


def _is_json_media_type(media_type: str) -> bool:
    base = media_type.split(";", 1)[0].strip().lower()
    return base == "application/json" or base.endswith("+json")


def _type_of(schema: dict[str, Any]) -> str:
    t = schema.get("type")
    if isinstance(t, str):
        return t
    if isinstance(t, list):
        non_null = [x for x in t if x != "null"]
        if non_null:
            return non_null[0]
    if "properties" in schema:
        return "object"
    if "items" in schema:
        return "array"
    return "string"
