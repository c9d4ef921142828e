"""Resolution of a cluster's API schema from its discovery information."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from .schema_builder import (
    APIResourceList,
    CustomResourceDefinition,
    OpenAPIClient,
    RestMapper,
    SchemaBuilder,
    SchemaError,
    parse_group_version,
)

SEPARATOR = "/"
ACCEPT_JSON = "application/json"


class InvalidPathError(SchemaError):
    """The OpenAPI path has no ``/`` separator."""

    def __init__(self) -> None:
        super().__init__("path doesn't contain the / separator")


class NotPreferredError(SchemaError):
    """The OpenAPI path belongs to an API group the server does not prefer."""

    def __init__(self) -> None:
        super().__init__("path ApiGroup does not belong to the server preferred APIs")


class GVKNotPreferredError(SchemaError):
    """The CRD's kind is missing from the server's preferred resources."""

    def __init__(self) -> None:
        super().__init__("failed to find CRD GVK in API preferred resources")


class Discovery(Protocol):
    def server_preferred_resources(self) -> list[APIResourceList]: ...

    def openapi_v3(self) -> OpenAPIClient: ...


@dataclass
class GroupKindVersions:
    group: str
    kind: str
    versions: list[str] = field(default_factory=list)


def crd_group_kind_versions(crd: CustomResourceDefinition) -> GroupKindVersions:
    """Return the group, kind and all version names of a CRD."""
    return GroupKindVersions(group=crd.group, kind=crd.kind, versions=list(crd.versions))


def preferred_api_groups_for_crd(
    gkv: GroupKindVersions, resource_lists: Iterable[APIResourceList]
) -> list[str]:
    """Return every preferred group version, provided the CRD's kind is among them."""
    kind_found = False
    preferred: list[str] = []
    for resources in resource_lists:
        try:
            gv = parse_group_version(resources.group_version)
        except ValueError:
            continue
        if not kind_found and gv.group == gkv.group and gv.version in gkv.versions:
            kind_found = any(res.kind == gkv.kind for res in resources.api_resources)
        preferred.append(resources.group_version)
    if not kind_found:
        raise GVKNotPreferredError()
    return preferred


def schema_for_path(preferred_api_groups: Iterable[str], path: str, group_version: Any) -> dict[str, Any]:
    """Fetch the component schemas behind one OpenAPI v3 path."""
    if SEPARATOR not in path:
        raise InvalidPathError()
    path_api_group = SEPARATOR.join(path.split(SEPARATOR)[1:])
    if path_api_group not in preferred_api_groups:
        raise NotPreferredError()

    try:
        payload = group_version.schema(ACCEPT_JSON)
    except Exception as exc:
        raise SchemaError(f"failed to get schema for path {path} :{exc}") from exc

    try:
        document = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as exc:
        raise SchemaError(f"failed to unmarshal schema for path {path} :{exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise SchemaError(f"failed to unmarshal schema for path {path} :not an object")
    components = document.get("components") or {}
    schemas = components.get("schemas") if isinstance(components, dict) else None
    if schemas is None:
        return {}
    if not isinstance(schemas, dict):
        raise SchemaError(f"failed to unmarshal schema for path {path} :schemas is not an object")
    return schemas


def _preferred_resources(discovery: Discovery) -> list[APIResourceList]:
    try:
        return list(discovery.server_preferred_resources())
    except Exception as exc:
        raise SchemaError(f"failed to get server preferred resources: {exc}") from exc


def resolve_schema(discovery: Discovery, rest_mapper: RestMapper) -> bytes:
    """Build the v2 definitions JSON for every preferred API group of a cluster."""
    resource_lists = _preferred_resources(discovery)
    preferred = [resources.group_version for resources in resource_lists]
    return (
        SchemaBuilder(discovery.openapi_v3(), preferred)
        .with_scope(rest_mapper)
        .with_api_resource_categories(resource_lists)
        .complete()
    )


@dataclass
class CRDResolver:
    """Resolves a cluster's schema, optionally centred on one CRD."""

    discovery: Discovery
    rest_mapper: RestMapper

    def resolve(self) -> bytes:
        return resolve_schema(self.discovery, self.rest_mapper)

    def resolve_api_schema(self, crd: CustomResourceDefinition) -> bytes:
        gkv = crd_group_kind_versions(crd)
        resource_lists = _preferred_resources(self.discovery)
        try:
            preferred = preferred_api_groups_for_crd(gkv, resource_lists)
        except GVKNotPreferredError as exc:
            raise SchemaError(f"failed to filter server preferred resources: {exc}") from exc
        return (
            SchemaBuilder(self.discovery.openapi_v3(), preferred)
            .with_scope(self.rest_mapper)
            .with_crd_categories(crd)
            .complete()
        )


class Resolver:
    """Resolves the schema of whichever cluster it is handed."""

    def resolve(self, discovery: Discovery, rest_mapper: RestMapper) -> bytes:
        return resolve_schema(discovery, rest_mapper)