from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse
import re

import httpx
import yaml

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

_SERVER_VAR_RE = re.compile(r"\{([^}]+)\}")


class SpecError(Exception):
    """The api description cannot be read or is not OpenAPI 3 / Swagger 2."""


@dataclass
class Schema:
    type: Optional[str] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Schema":
        return cls(
            type=raw.get("type"),
            minimum=raw.get("minimum"),
            maximum=raw.get("maximum"),
            min_length=raw.get("minLength"),
            max_length=raw.get("maxLength"),
        )


@dataclass
class Parameter:
    name: str
    location: str
    required: bool = False
    schema: Optional[Schema] = None


@dataclass
class Operation:
    method: str
    path: str
    parameters: List[Parameter] = field(default_factory=list)
    request_body_required: bool = False


@dataclass
class ApiModel:
    title: str = ""
    description: str = ""
    servers: List[str] = field(default_factory=list)
    # path template -> {METHOD: Operation}, in document order
    paths: Dict[str, Dict[str, Operation]] = field(default_factory=dict)

    def operations(self):
        for path, ops in self.paths.items():
            for method, op in ops.items():
                yield path, method, op

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ApiModel":
        info = doc.get("info") or {}
        is_swagger2 = str(doc.get("swagger", "")).startswith("2")

        paths: Dict[str, Dict[str, Operation]] = {}
        for path, item in (doc.get("paths") or {}).items():
            if not isinstance(item, dict):
                continue
            item = _deref(doc, item)
            shared = [_deref(doc, p) for p in item.get("parameters") or []]

            ops: Dict[str, Operation] = {}
            for method in HTTP_METHODS:
                details = item.get(method)
                if not isinstance(details, dict):
                    continue
                raw_params = _merge_parameters(
                    shared, [_deref(doc, p) for p in details.get("parameters") or []]
                )
                params = [_parameter(doc, p, is_swagger2) for p in raw_params]
                ops[method.upper()] = Operation(
                    method=method.upper(),
                    path=path,
                    parameters=[p for p in params if p.location != "body"],
                    request_body_required=_body_required(doc, details, params),
                )
            if ops:
                paths[path] = ops

        return cls(
            title=info.get("title") or "",
            description=info.get("description") or "",
            servers=_servers(doc, is_swagger2),
            paths=paths,
        )


def is_valid_url(candidate: str) -> bool:
    parsed = urlparse(candidate)
    return bool(parsed.scheme and parsed.netloc)


def load_document(source: str, timeout: float = 10.0) -> Dict[str, Any]:
    """Read an OpenAPI 3 / Swagger 2 document from a file path or url."""
    try:
        if is_valid_url(source):
            response = httpx.get(source, timeout=timeout, follow_redirects=True)
            response.raise_for_status()
            text = response.text
        else:
            text = Path(source).read_text(encoding="utf-8")
        doc = yaml.safe_load(text) or {}
    except (OSError, httpx.HTTPError, yaml.YAMLError) as e:
        raise SpecError(f"Cannot read api description {source}: {e}") from e

    if not isinstance(doc, dict):
        raise SpecError(f"The input {source} is not an api description object")

    openapi = str(doc.get("openapi", ""))
    swagger = str(doc.get("swagger", ""))
    if not (openapi.startswith("3") or swagger.startswith("2")):
        raise SpecError(f"The input file does not define its version as Swagger 2.0 or OpenAPI 3.0! {source}")
    return doc


def load_model(source: str) -> ApiModel:
    return ApiModel.from_document(load_document(source))


def _deref(doc: Dict[str, Any], obj: Any, depth: int = 0) -> Any:
    # local refs only: "#/components/..." or "#/definitions/..."
    if not isinstance(obj, dict) or "$ref" not in obj or depth > 16:
        return obj
    ref = obj["$ref"]
    if not isinstance(ref, str) or not ref.startswith("#/"):
        return {}
    target: Any = doc
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(target, dict) or part not in target:
            return {}
        target = target[part]
    return _deref(doc, target, depth + 1)


def _merge_parameters(shared: List[dict], own: List[dict]) -> List[dict]:
    """Operation parameters override path-level ones with the same name and location."""
    merged: Dict[Tuple[Any, Any], dict] = {}
    for p in shared + own:
        if isinstance(p, dict):
            merged[(p.get("name"), p.get("in"))] = p
    return list(merged.values())


def _parameter(doc: Dict[str, Any], raw: Dict[str, Any], is_swagger2: bool) -> Parameter:
    location = str(raw.get("in", "")).lower()
    schema = None
    if "schema" in raw:
        schema = Schema.from_dict(_deref(doc, raw["schema"]) or {})
    elif is_swagger2 and "type" in raw:
        # Swagger 2 declares non-body parameter types inline
        schema = Schema.from_dict(raw)
    return Parameter(
        name=str(raw.get("name", "")),
        location=location,
        required=bool(raw.get("required", False)),
        schema=schema,
    )


def _body_required(doc: Dict[str, Any], details: Dict[str, Any], params: List[Parameter]) -> bool:
    body = details.get("requestBody")
    if body is not None:
        return bool(_deref(doc, body).get("required", False))
    return any(p.location == "body" and p.required for p in params)


def _servers(doc: Dict[str, Any], is_swagger2: bool) -> List[str]:
    if is_swagger2:
        host = doc.get("host")
        if not host:
            return []
        schemes = doc.get("schemes") or ["https"]
        return [f"{schemes[0]}://{host}{doc.get('basePath') or ''}"]

    servers = []
    for server in doc.get("servers") or []:
        url = str(server.get("url", ""))
        variables = server.get("variables") or {}

        def _default(m, variables=variables):
            var = variables.get(m.group(1)) or {}
            return str(var.get("default", m.group(0)))

        servers.append(_SERVER_VAR_RE.sub(_default, url))
    return servers
