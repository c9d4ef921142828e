"""Selection and assembly of the reconciler that fits the target API server."""

from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from .clusterpath import ClusterPathResolver, ObjectClient, RestConfig, _parse_url
from .controllers import APIBindingReconciler, CRDReconciler, SchemaStore
from .discoveryclient import DiscoveryFactory
from .schema_builder import SchemaError
from .schema_resolver import CRDResolver, Resolver
from .workspace_config import virtual_workspace_config
from .workspacefile import IOHandler

KUBERNETES_CLUSTER_NAME = "kubernetes"


@dataclass
class ReconcilerOptions:
    """What a reconciler needs to reach the API server and store its schemas."""

    config: RestConfig | None
    scheme: Any
    client: ObjectClient
    openapi_definitions_path: str | os.PathLike[str]
    cluster_client_factory: Callable[[RestConfig, Any], Any]


@contextmanager
def _failing_with(message: str) -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        raise RuntimeError(f"{message}: {exc}") from exc


def pre_reconcile(crd_resolver: CRDResolver, io: SchemaStore) -> None:
    """Resolve the cluster's whole schema once and store it under the kubernetes name."""
    try:
        data = crd_resolver.resolve()
    except Exception as exc:
        raise SchemaError(f"failed to resolve server JSON schema: {exc}") from exc
    try:
        io.write(data, KUBERNETES_CLUSTER_NAME)
    except OSError as exc:
        raise OSError(f"failed to write JSON to filesystem: {exc}") from exc


class ReconcilerFactory:
    """Builds a CRD reconciler for plain clusters or an API binding reconciler for kcp."""

    def __init__(
        self,
        kcp_enabled: bool,
        discovery_client_factory: Callable[[RestConfig | None], Any],
        rest_mapper_factory: Callable[[RestConfig], Any],
        pre_reconcile_func: Callable[[CRDResolver, SchemaStore], None] = pre_reconcile,
        discovery_factory_factory: Callable[[RestConfig], DiscoveryFactory] | None = None,
    ):
        self.kcp_enabled = kcp_enabled
        self.discovery_client_factory = discovery_client_factory
        self.rest_mapper_factory = rest_mapper_factory
        self.pre_reconcile_func = pre_reconcile_func
        self.discovery_factory_factory = discovery_factory_factory or self._default_discovery_factory

    def _default_discovery_factory(self, config: RestConfig) -> DiscoveryFactory:
        return DiscoveryFactory(config, self.discovery_client_factory, self.rest_mapper_factory)

    def new_reconciler(self, options: ReconcilerOptions) -> CRDReconciler | APIBindingReconciler:
        """Return the reconciler matching the configured mode."""
        if self.kcp_enabled:
            return self._new_kcp_reconciler(options)
        return self._new_std_reconciler(options)

    def _rest_mapper_from_config(self, config: RestConfig | None) -> Any:
        with _failing_with("failed to create http client"):
            if config is None:
                raise ValueError("config should not be nil")
            _parse_url(config.host)
        with _failing_with("failed to create rest mapper"):
            return self.rest_mapper_factory(config)

    def _new_std_reconciler(self, options: ReconcilerOptions) -> CRDReconciler:
        with _failing_with("failed to create discovery client"):
            discovery = self.discovery_client_factory(options.config)
        with _failing_with("failed to create IO Handler"):
            io = IOHandler(options.openapi_definitions_path)
        with _failing_with("failed to create rest mapper from config"):
            rest_mapper = self._rest_mapper_from_config(options.config)

        resolver = CRDResolver(discovery=discovery, rest_mapper=rest_mapper)
        with _failing_with("failed to generate OpenAPI Schema for cluster"):
            self.pre_reconcile_func(resolver, io)
        return CRDReconciler(KUBERNETES_CLUSTER_NAME, options.client, resolver, io)

    def _new_kcp_reconciler(self, options: ReconcilerOptions) -> APIBindingReconciler:
        with _failing_with("failed to create IO Handler"):
            io = IOHandler(options.openapi_definitions_path)
        with _failing_with("failed to create cluster path resolver"):
            path_resolver = ClusterPathResolver(
                options.config, options.scheme, options.cluster_client_factory
            )
        with _failing_with("unable to get virtual workspace config"):
            workspace_config = virtual_workspace_config(options.config, options.client)
        with _failing_with("failed to create Discovery client factory"):
            discovery_factory = self.discovery_factory_factory(workspace_config)
        return APIBindingReconciler(io, discovery_factory, Resolver(), path_resolver)