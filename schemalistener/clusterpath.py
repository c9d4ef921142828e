"""Per-cluster connection settings and lookup of a cluster's workspace path."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Protocol
from urllib.parse import SplitResult, urlsplit, urlunsplit

ROOT_CLUSTER = "root"
LOGICAL_CLUSTER_KIND = "LogicalCluster"
LOGICAL_CLUSTER_NAME = "cluster"
PATH_ANNOTATION = "kcp.io/path"


class ObjectClient(Protocol):
    def get(self, kind: str, name: str) -> Mapping[str, Any]: ...


@dataclass(frozen=True)
class RestConfig:
    """Connection settings for an API server."""

    host: str = ""


def _parse_url(raw: str) -> SplitResult:
    """Split a URL, rejecting the forms an API server address can never take."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in raw):
        raise ValueError(f"parse {raw!r}: invalid control character in URL")
    if raw.startswith(":"):
        raise ValueError(f"parse {raw!r}: missing protocol scheme")
    parts = urlsplit(raw)
    try:
        parts.port
    except ValueError as exc:
        raise ValueError(f"parse {raw!r}: invalid port: {exc}") from exc
    return parts


def _with_path(raw: str, path: str) -> str:
    return urlunsplit(_parse_url(raw)._replace(path=path))


def cluster_config(name: str, config: RestConfig | None) -> RestConfig:
    """Return a copy of ``config`` whose host points at the named cluster."""
    if config is None:
        raise ValueError("config should not be nil")
    try:
        host = _with_path(config.host, f"/clusters/{name}")
    except ValueError as exc:
        raise ValueError(f"failed to parse rest config's Host URL: {exc}") from exc
    return replace(config, host=host)


def path_for_cluster(name: str, client: ObjectClient) -> str:
    """Return the workspace path of a cluster, read from its LogicalCluster annotation."""
    if name == ROOT_CLUSTER:
        return name
    try:
        logical_cluster = client.get(LOGICAL_CLUSTER_KIND, LOGICAL_CLUSTER_NAME)
    except Exception as exc:
        raise LookupError(f"failed to get logicalcluster resource: {exc}") from exc
    metadata = logical_cluster.get("metadata") or {}
    annotations = metadata.get("annotations") or {}
    path = annotations.get(PATH_ANNOTATION)
    if path is None:
        raise LookupError("failed to get cluster path from kcp.io/path annotation")
    return path


class ClusterPathResolver:
    """Creates API clients bound to individual clusters."""

    def __init__(
        self,
        config: RestConfig | None,
        scheme: Any,
        client_factory: Callable[[RestConfig, Any], Any],
    ):
        if config is None:
            raise ValueError("config should not be nil")
        if scheme is None:
            raise ValueError("scheme should not be nil")
        self.config = config
        self.scheme = scheme
        self.client_factory = client_factory

    def client_for_cluster(self, name: str) -> Any:
        """Return a client whose requests go to the named cluster."""
        try:
            config = cluster_config(name, self.config)
        except ValueError as exc:
            raise ValueError(f"failed to get cluster config: {exc}") from exc
        return self.client_factory(config, self.scheme)