"""Creation of discovery clients and REST mappers for individual clusters."""

from __future__ import annotations

from typing import Any, Callable

from .clusterpath import RestConfig, cluster_config


class DiscoveryFactory:
    """Builds discovery clients and REST mappers aimed at named clusters."""

    def __init__(
        self,
        config: RestConfig | None,
        discovery_factory: Callable[[RestConfig], Any],
        rest_mapper_factory: Callable[[RestConfig], Any],
    ):
        if config is None:
            raise ValueError("config should not be nil")
        self.config = config
        self.discovery_factory = discovery_factory
        self.rest_mapper_factory = rest_mapper_factory

    def _config_for(self, name: str) -> RestConfig:
        try:
            return cluster_config(name, self.config)
        except ValueError as exc:
            raise ValueError(f"failed to get rest config for cluster: {exc}") from exc

    def client_for_cluster(self, name: str) -> Any:
        """Return a discovery client for the named cluster."""
        return self.discovery_factory(self._config_for(name))

    def rest_mapper_for_cluster(self, name: str) -> Any:
        """Return a REST mapper for the named cluster."""
        return self.rest_mapper_factory(self._config_for(name))