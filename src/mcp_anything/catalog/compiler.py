"""Compile an OpenAPI description into an ordered catalog of tool descriptors."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable
from urllib.parse import urljoin, urlsplit

import structlog

from .schema_mapper import InputSchema, RefResolver, SchemaField, map_parameters

logger = structlog.get_logger(__name__)

# Fixed so that recompiling the same description yields the same order.
METHODS: tuple[str, ...] = ("get", "post", "put", "patch", "delete")

_PLACEHOLDER = re.compile(r"\{([^}/]+)\}")


@dataclass(frozen=True)
class ToolDescriptor:
    """One invocable tool derived from one API operation."""

    name: str
    description: str
    method: str  # GET, POST, …
    path: str  # /users/{id}
    input_schema: InputSchema
    requires_auth: bool = True

    @property
    def path_params(self) -> list[str]:
        return _PLACEHOLDER.findall(self.path)

    def to_dict(self) -> dict[str, Any]:
        schema = self.input_schema
        return {
            "name": self.name,
            "description": self.description,
            "method": self.method,
            "path": self.path,
            "requires_auth": self.requires_auth,
            "input_schema": {
                "fields": [
                    {
                        "name": f.name,
                        "type": f.type,
                        "location": f.location,
                        "description": f.description,
                        "schema": f.schema,
                    }
                    for f in schema.fields.values()
                ],
                "required": sorted(schema.required) if schema.required else None,
                "body_schema": schema.body_schema,
                "body_required": schema.body_required,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolDescriptor:
        raw = data["input_schema"]
        fields = {f["name"]: SchemaField(**f) for f in raw.get("fields", [])}
        required = raw.get("required")
        return cls(
            name=data["name"],
            description=data["description"],
            method=data["method"],
            path=data["path"],
            requires_auth=data.get("requires_auth", True),
            input_schema=InputSchema(
                fields=fields,
                required=frozenset(required) if required else None,
                body_schema=raw.get("body_schema"),
                body_required=raw.get("body_required", False),
            ),
        )


@dataclass(frozen=True)
class AuthConfig:
    """Authorization-code endpoints shared by every tool of a catalog."""

    authorize_url: str | None = None
    token_url: str | None = None
    scopes: tuple[str, ...] = ()

    @property
    def is_configured(self) -> bool:
        return bool(self.authorize_url and self.token_url)


@dataclass(frozen=True)
class Catalog:
    """Immutable compiled artifact: tools plus catalog-wide settings."""

    tools: tuple[ToolDescriptor, ...]
    auth: AuthConfig = field(default_factory=AuthConfig)
    base_url: str = ""
    title: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "base_url": self.base_url,
            "auth": {
                "authorize_url": self.auth.authorize_url,
                "token_url": self.auth.token_url,
                "scopes": list(self.auth.scopes),
            },
            "tools": [t.to_dict() for t in self.tools],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Catalog:
        auth = data.get("auth") or {}
        return cls(
            tools=tuple(ToolDescriptor.from_dict(t) for t in data.get("tools", [])),
            auth=AuthConfig(
                authorize_url=auth.get("authorize_url"),
                token_url=auth.get("token_url"),
                scopes=tuple(auth.get("scopes") or ()),
            ),
            base_url=data.get("base_url", ""),
            title=data.get("title", ""),
        )


class ToolCatalogCompiler:
    """Walks every operation of a description and emits tool descriptors.

    Names that collide (with each other or with *reserved* names) get a
    numeric suffix: the second ``get_user`` becomes ``get_user_2``.
    """

    def __init__(self, reserved: Iterable[str] = ()):
        self.reserved = frozenset(reserved)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def compile(self, description: dict[str, Any]) -> list[ToolDescriptor]:
        resolver = RefResolver(description)
        global_security = description.get("security")
        taken: set[str] = set(self.reserved)
        tools: list[ToolDescriptor] = []

        paths = description.get("paths") or {}
        if not isinstance(paths, dict):
            logger.warning("Ignoring malformed paths", type=type(paths).__name__)
            return tools
        for path, path_item in paths.items():
            path_item = resolver.resolve(path_item)
            if not isinstance(path_item, dict):
                logger.warning("Skipping malformed path item", path=path)
                continue
            for method in METHODS:
                op = path_item.get(method)
                if op is None:
                    continue
                try:
                    tool = self._build_tool(
                        path, method, op, path_item, global_security, resolver
                    )
                except (TypeError, ValueError, AttributeError, KeyError) as e:
                    logger.warning(
                        "Skipping malformed operation",
                        path=path,
                        method=method,
                        error=str(e),
                    )
                    continue

                unique = _disambiguate(tool.name, taken)
                if unique != tool.name:
                    logger.warning(
                        "Tool name collision", name=tool.name, renamed_to=unique
                    )
                    tool = ToolDescriptor(
                        name=unique,
                        description=tool.description,
                        method=tool.method,
                        path=tool.path,
                        input_schema=tool.input_schema,
                        requires_auth=tool.requires_auth,
                    )
                taken.add(unique)
                tools.append(tool)

        logger.info("Compiled tool catalog", tool_count=len(tools))
        return tools

    # ------------------------------------------------------------------
    # Per-operation
    # ------------------------------------------------------------------

    def _build_tool(
        self,
        path: str,
        method: str,
        op: Any,
        path_item: dict[str, Any],
        global_security: Any,
        resolver: RefResolver,
    ) -> ToolDescriptor:
        if not isinstance(op, dict):
            raise TypeError(f"operation is {type(op).__name__}, expected mapping")

        raw_id = op.get("operationId")
        if not isinstance(raw_id, str) or not raw_id.strip():
            raw_id = f"{method}_{path}"
        name = tool_name(raw_id) or f"{method}_operation"

        description = (
            op.get("summary")
            or op.get("description")
            or f"{method.upper()} {path}"
        )

        parameters = _merge_parameters(
            path_item.get("parameters") or [],
            op.get("parameters") or [],
            resolver,
        )
        schema = map_parameters(parameters, op.get("requestBody"), resolver)
        schema = _ensure_path_fields(path, schema)

        security = op["security"] if "security" in op else global_security
        requires_auth = not (isinstance(security, list) and len(security) == 0)

        return ToolDescriptor(
            name=name,
            description=str(description).strip(),
            method=method.upper(),
            path=path,
            input_schema=schema,
            requires_auth=requires_auth,
        )


# ----------------------------------------------------------------------
# Authorization configuration
# ----------------------------------------------------------------------


def extract_auth_config(
    description: dict[str, Any],
    authorize_url: str | None = None,
    token_url: str | None = None,
) -> AuthConfig:
    """Pick the first oauth2 authorization-code scheme; explicit URLs win."""
    components = description.get("components") or {}
    schemes = components.get("securitySchemes") if isinstance(components, dict) else components
    if not isinstance(schemes, dict):
        if schemes:
            logger.warning("Ignoring malformed securitySchemes", type=type(schemes).__name__)
        schemes = {}
    scopes: tuple[str, ...] = ()

    for scheme in schemes.values():
        if not isinstance(scheme, dict) or scheme.get("type") != "oauth2":
            continue
        flows = scheme.get("flows")
        flow = flows.get("authorizationCode") if isinstance(flows, dict) else None
        if not isinstance(flow, dict):
            continue
        authorize_url = authorize_url or flow.get("authorizationUrl")
        token_url = token_url or flow.get("tokenUrl")
        flow_scopes = flow.get("scopes")
        scopes = tuple(flow_scopes) if isinstance(flow_scopes, dict) else ()
        break

    return AuthConfig(authorize_url=authorize_url, token_url=token_url, scopes=scopes)


def build_catalog(
    description: dict[str, Any],
    *,
    source_url: str | None = None,
    authorize_url: str | None = None,
    token_url: str | None = None,
    base_url: str | None = None,
    reserved: Iterable[str] = (),
) -> Catalog:
    """Compile tools and extract catalog-wide settings in one step."""
    tools = ToolCatalogCompiler(reserved).compile(description)
    return Catalog(
        tools=tuple(tools),
        auth=extract_auth_config(description, authorize_url, token_url),
        base_url=base_url or resolve_base_url(description, source_url),
        title=_title(description),
    )


def resolve_base_url(description: dict[str, Any], source_url: str | None = None) -> str:
    """Upstream base URL: first ``servers`` entry, relative to *source_url*."""
    servers = description.get("servers")
    server = servers[0] if isinstance(servers, list) and servers else None
    if isinstance(server, dict) and isinstance(server.get("url"), str) and server["url"]:
        variables = server.get("variables")
        url = _expand_server_variables(
            server["url"], variables if isinstance(variables, dict) else {}
        )
        if source_url and not urlsplit(url).scheme:
            url = urljoin(source_url, url)
        return url.rstrip("/")
    if source_url and urlsplit(source_url).scheme in ("http", "https"):
        parts = urlsplit(source_url)
        return f"{parts.scheme}://{parts.netloc}"
    return ""


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def tool_name(raw: str) -> str:
    """Normalise an operation id into ``[a-z0-9_]`` with single underscores."""
    text = re.sub(r"[^A-Za-z0-9_]+", "_", raw)
    text = re.sub(r"_+", "_", text)
    return text.strip("_").lower()


def _title(description: dict[str, Any]) -> str:
    info = description.get("info")
    title = info.get("title") if isinstance(info, dict) else None
    return title if isinstance(title, str) else ""


def _disambiguate(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    n = 2
    while f"{name}_{n}" in taken:
        n += 1
    return f"{name}_{n}"


def _merge_parameters(
    path_level: list[Any],
    op_level: list[Any],
    resolver: RefResolver,
) -> list[Any]:
    """Operation parameters override path-item ones with the same name+in."""
    merged: dict[tuple[Any, Any], Any] = {}
    for raw in list(path_level) + list(op_level):
        param = resolver.resolve(raw)
        if isinstance(param, dict):
            key = (param.get("name"), param.get("in"))
        else:
            key = (id(raw), None)
        merged[key] = param
    return list(merged.values())


def _ensure_path_fields(path: str, schema: InputSchema) -> InputSchema:
    """Every ``{param}`` must be exactly one required path field."""
    placeholders = _PLACEHOLDER.findall(path)
    if not placeholders:
        return schema

    fields = dict(schema.fields)
    required = set(schema.required_names)
    for name in placeholders:
        existing = fields.get(name)
        if existing is None or existing.location != "path":
            if existing is None:
                logger.warning("Undeclared path parameter", path=path, param=name)
            fields[name] = SchemaField(
                name=name,
                type=existing.type if existing else "string",
                location="path",
                description=existing.description if existing else "",
                schema=existing.schema if existing else {"type": "string"},
            )
        required.add(name)

    return InputSchema(
        fields=fields,
        required=frozenset(required),
        body_schema=schema.body_schema,
        body_required=schema.body_required,
    )


def _expand_server_variables(url: str, variables: dict[str, Any]) -> str:
    def _replacer(match: re.Match) -> str:
        var = variables.get(match.group(1))
        if isinstance(var, dict) and "default" in var:
            return str(var["default"])
        return match.group(0)

    return _PLACEHOLDER.sub(_replacer, url)
