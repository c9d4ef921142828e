"""Assembly of cluster OpenAPI schemas into a single v2 definitions document."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

from .jsonconvert import convert_json

GVK_EXTENSION_KEY = "x-kubernetes-group-version-kind"
SCOPE_EXTENSION_KEY = "x-kubernetes-scope"
CATEGORIES_EXTENSION_KEY = "x-kubernetes-categories"

NAMESPACE_SCOPED = "Namespaced"
CLUSTER_SCOPED = "Cluster"


class SchemaError(Exception):
    """Raised when an API schema cannot be fetched, filtered or assembled."""


@dataclass(frozen=True)
class GroupVersion:
    group: str
    version: str


@dataclass(frozen=True)
class GroupVersionKind:
    group: str
    version: str
    kind: str


@dataclass
class APIResource:
    kind: str
    categories: list[str] | None = None


@dataclass
class APIResourceList:
    group_version: str
    api_resources: list[APIResource] = field(default_factory=list)


@dataclass
class CustomResourceDefinition:
    group: str
    kind: str
    versions: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)


class OpenAPIClient(Protocol):
    def paths(self) -> Mapping[str, Any]: ...


class RestMapper(Protocol):
    def is_namespaced(self, gvk: GroupVersionKind) -> bool: ...


def parse_group_version(text: str) -> GroupVersion:
    """Parse ``group/version`` or a bare ``version`` string."""
    if not text or text == "/":
        return GroupVersion("", "")
    slashes = text.count("/")
    if slashes == 0:
        return GroupVersion("", text)
    if slashes == 1:
        group, version = text.split("/")
        return GroupVersion(group, version)
    raise ValueError(f"unexpected GroupVersion string: {text}")


def openapi_schema_key(gvk: GroupVersionKind) -> str:
    """Return the schema name for a kind, with the group written back to front."""
    reversed_group = ".".join(reversed(gvk.group.split(".")))
    return f"{reversed_group}.{gvk.version}.{gvk.kind}"


def crd_group_version_kind(crd: CustomResourceDefinition) -> GroupVersionKind:
    """Return the kind of a CRD at its first listed version."""
    if not crd.versions:
        raise ValueError("CRD has no versions defined")
    return GroupVersionKind(crd.group, crd.versions[0], crd.kind)


def _single_gvk(value: Any) -> GroupVersionKind | None:
    if not isinstance(value, list) or len(value) != 1:
        return None
    entry = value[0]
    if not isinstance(entry, dict):
        return None
    parts = [entry.get(name, "") for name in ("group", "version", "kind")]
    if not all(isinstance(part, str) for part in parts):
        return None
    return GroupVersionKind(*parts)


class SchemaBuilder:
    """Collects component schemas from preferred API groups and annotates them.

    Problems met along the way are kept in ``errors``; ``complete`` raises
    only when the final document cannot be produced.
    """

    def __init__(self, openapi_client: OpenAPIClient, preferred_api_groups: Iterable[str]):
        from .schema_resolver import schema_for_path

        self.schemas: dict[str, Any] = {}
        self.errors: list[Exception] = []
        preferred = list(preferred_api_groups)

        try:
            paths = openapi_client.paths()
        except Exception as exc:
            self.errors.append(SchemaError(f"failed to get OpenAPI paths: {exc}"))
            return

        for path, group_version in paths.items():
            try:
                schemas = schema_for_path(preferred, path, group_version)
            except SchemaError:
                continue
            self.schemas.update(schemas)

    def with_scope(self, rest_mapper: RestMapper) -> SchemaBuilder:
        """Mark every schema that names exactly one kind as namespaced or cluster scoped."""
        for schema in self.schemas.values():
            if not isinstance(schema, dict):
                continue
            gvk = _single_gvk(schema.get(GVK_EXTENSION_KEY))
            if gvk is None:
                continue
            try:
                namespaced = rest_mapper.is_namespaced(gvk)
            except Exception:
                continue
            schema[SCOPE_EXTENSION_KEY] = NAMESPACE_SCOPED if namespaced else CLUSTER_SCOPED
        return self

    def with_crd_categories(self, crd: CustomResourceDefinition) -> SchemaBuilder:
        """Attach a CRD's categories to its schema."""
        if not crd.categories:
            return self
        try:
            gvk = crd_group_version_kind(crd)
        except ValueError as exc:
            self.errors.append(SchemaError(f"failed to get CRD GVK: {exc}"))
            return self
        schema = self.schemas.get(openapi_schema_key(gvk))
        if isinstance(schema, dict):
            schema[CATEGORIES_EXTENSION_KEY] = list(crd.categories)
        return self

    def with_api_resource_categories(self, resource_lists: Iterable[APIResourceList]) -> SchemaBuilder:
        """Attach discovery categories to the schemas of the listed resources."""
        for resource_list in resource_lists:
            for resource in resource_list.api_resources:
                if resource.categories is None:
                    continue
                try:
                    gv = parse_group_version(resource_list.group_version)
                except ValueError as exc:
                    self.errors.append(SchemaError(f"failed to parse groupVersion: {exc}"))
                    continue
                key = openapi_schema_key(GroupVersionKind(gv.group, gv.version, resource.kind))
                schema = self.schemas.get(key)
                if isinstance(schema, dict):
                    schema[CATEGORIES_EXTENSION_KEY] = list(resource.categories)
        return self

    def _fail(self, message: str, exc: Exception) -> SchemaError:
        self.errors.append(SchemaError(f"{message}: {exc}"))
        return SchemaError("; ".join(str(err) for err in self.errors))

    def complete(self) -> bytes:
        """Return the collected schemas as v2 definitions JSON."""
        try:
            v3_json = json.dumps({"components": {"schemas": self.schemas}})
        except (TypeError, ValueError) as exc:
            raise self._fail("failed to marshal openAPI v3 runtimeSchema", exc) from exc
        try:
            return convert_json(v3_json)
        except ValueError as exc:
            raise self._fail("failed to convert openAPI v3 runtimeSchema to v2", exc) from exc