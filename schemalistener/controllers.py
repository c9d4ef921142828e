"""Reconcilers that keep each cluster's stored schema file up to date."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

from .clusterpath import ObjectClient, path_for_cluster
from .schema_builder import CustomResourceDefinition, SchemaError

log = logging.getLogger(__name__)

SYSTEM_CLUSTER_PREFIX = "system"
CRD_KIND = "CustomResourceDefinition"


class NotFoundError(LookupError):
    """Raised by an object client when the requested object does not exist."""


@dataclass(frozen=True)
class Request:
    """Identifies the object a reconciliation is about."""

    name: str
    namespace: str = ""
    cluster_name: str = ""


class SchemaStore(Protocol):
    def read(self, cluster_name: str) -> bytes: ...

    def write(self, data: bytes, cluster_name: str) -> None: ...


class _ClusterClients(Protocol):
    def client_for_cluster(self, name: str) -> Any: ...

    def rest_mapper_for_cluster(self, name: str) -> Any: ...


class _PathResolver(Protocol):
    def client_for_cluster(self, name: str) -> ObjectClient: ...


class _SchemaResolver(Protocol):
    def resolve(self, discovery: Any, rest_mapper: Any) -> bytes: ...


class _CRDSchemaResolver(Protocol):
    def resolve(self) -> bytes: ...

    def resolve_api_schema(self, crd: CustomResourceDefinition) -> bytes: ...


class APIBindingReconciler:
    """Regenerates a workspace's schema file whenever its API bindings change."""

    def __init__(
        self,
        io: SchemaStore,
        discovery_factory: _ClusterClients,
        schema_resolver: _SchemaResolver,
        path_resolver: _PathResolver,
    ):
        self.io = io
        self.discovery_factory = discovery_factory
        self.schema_resolver = schema_resolver
        self.path_resolver = path_resolver

    def reconcile(self, request: Request) -> None:
        """Write the workspace's current schema if it is new or has changed."""
        cluster = request.cluster_name
        if cluster.startswith(SYSTEM_CLUSTER_PREFIX):
            return

        try:
            client = self.path_resolver.client_for_cluster(cluster)
        except Exception:
            log.exception("failed to get cluster client (cluster=%s)", cluster)
            raise
        try:
            cluster_path = path_for_cluster(cluster, client)
        except Exception:
            log.exception("failed to get cluster path (cluster=%s)", cluster)
            raise

        log.info("starting reconciliation... (cluster=%s)", cluster_path)

        try:
            discovery = self.discovery_factory.client_for_cluster(cluster_path)
        except Exception:
            log.exception("failed to create discovery client for cluster %s", cluster_path)
            raise
        try:
            rest_mapper = self.discovery_factory.rest_mapper_for_cluster(cluster_path)
        except Exception:
            log.exception("failed to create rest mapper for cluster %s", cluster_path)
            raise

        try:
            saved: bytes | None = self.io.read(cluster_path)
        except FileNotFoundError:
            saved = None
        except OSError:
            log.exception("failed to read JSON from filesystem (cluster=%s)", cluster_path)
            raise

        try:
            actual = self.schema_resolver.resolve(discovery, rest_mapper)
        except Exception:
            log.exception("failed to resolve server JSON schema (cluster=%s)", cluster_path)
            raise

        if actual != saved:
            try:
                self.io.write(actual, cluster_path)
            except OSError:
                log.exception("failed to write JSON to filesystem (cluster=%s)", cluster_path)
                raise


def _crd_from_object(obj: Any) -> CustomResourceDefinition:
    if isinstance(obj, CustomResourceDefinition):
        return obj
    if not isinstance(obj, Mapping):
        raise TypeError(f"unexpected CustomResourceDefinition object: {obj!r}")
    spec = obj.get("spec") or {}
    names = spec.get("names") or {}
    return CustomResourceDefinition(
        group=spec.get("group", ""),
        kind=names.get("kind", ""),
        versions=[version.get("name", "") for version in spec.get("versions") or []],
        categories=list(names.get("categories") or []),
    )


class CRDReconciler:
    """Regenerates a cluster's schema file whenever a CRD changes."""

    def __init__(
        self,
        cluster_name: str,
        client: ObjectClient,
        crd_resolver: _CRDSchemaResolver,
        io: SchemaStore,
    ):
        self.cluster_name = cluster_name
        self.client = client
        self.crd_resolver = crd_resolver
        self.io = io

    def reconcile(self, request: Request) -> None:
        """Refresh the schema file after the named CRD was added, changed or removed."""
        log.info("starting reconciliation... (cluster=%s, crd=%s)", self.cluster_name, request.name)
        try:
            obj = self.client.get(CRD_KIND, request.name)
        except NotFoundError:
            log.info("resource not found, updating schema... (crd=%s)", request.name)
            self._update(self.crd_resolver.resolve)
            return
        except Exception:
            log.exception("failed to get reconciled object %s", request.name)
            raise

        crd = _crd_from_object(obj)
        self._update(lambda: self.crd_resolver.resolve_api_schema(crd))

    def _update(self, resolve: Callable[[], bytes]) -> None:
        try:
            saved = self.io.read(self.cluster_name)
        except OSError as exc:
            raise OSError(f"failed to read JSON from filesystem: {exc}") from exc
        try:
            actual = resolve()
        except Exception as exc:
            raise SchemaError(f"failed to resolve server JSON schema: {exc}") from exc
        if actual != saved:
            try:
                self.io.write(actual, self.cluster_name)
            except OSError as exc:
                raise OSError(f"failed to write JSON to filesystem: {exc}") from exc