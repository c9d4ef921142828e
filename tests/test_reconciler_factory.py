import pytest

from schemalistener.clusterpath import RestConfig
from schemalistener.controllers import APIBindingReconciler, CRDReconciler, NotFoundError
from schemalistener.discoveryclient import DiscoveryFactory
from schemalistener.reconciler_factory import (
    ReconcilerFactory,
    ReconcilerOptions,
    pre_reconcile,
)
from schemalistener.schema_builder import SchemaError
from schemalistener.workspacefile import IOHandler

TENANCY_API_EXPORT_NAME = "tenancy.kcp.io"
VALID_API_SERVER_HOST = "https://192.168.1.13:6443"
SCHEMELESS_API_SERVER_HOST = "://192.168.1.13:6443"


class FakeObjectClient:
    def __init__(self, objects):
        self.objects = objects

    def get(self, kind, name):
        try:
            return self.objects[(kind, name)]
        except KeyError:
            raise NotFoundError(f"{kind} {name} not found") from None


class FakeOpenAPI:
    def paths(self):
        return {}


class FakeDiscovery:
    def server_preferred_resources(self):
        return []

    def openapi_v3(self):
        return FakeOpenAPI()


def fake_client_factory(cfg):
    if cfg is None:
        raise ValueError("config cannot be nil")
    return FakeDiscovery()


def fake_rest_mapper_factory(cfg):
    return object()


def api_export_client():
    return FakeObjectClient(
        {
            ("APIExport", TENANCY_API_EXPORT_NAME): {
                "metadata": {"name": TENANCY_API_EXPORT_NAME},
                "status": {"virtualWorkspaces": [{"url": VALID_API_SERVER_HOST}]},
            }
        }
    )


def make_factory(kcp_enabled):
    return ReconcilerFactory(
        kcp_enabled,
        fake_client_factory,
        fake_rest_mapper_factory,
        pre_reconcile_func=lambda resolver, io: None,
        discovery_factory_factory=lambda cfg: DiscoveryFactory(
            cfg, fake_client_factory, fake_rest_mapper_factory
        ),
    )


def make_options(cfg, path):
    return ReconcilerOptions(
        config=cfg,
        scheme=object(),
        client=api_export_client(),
        openapi_definitions_path=path,
        cluster_client_factory=lambda config, scheme: object(),
    )


@pytest.mark.parametrize(
    "name, host, subdir, kcp_enabled, expected",
    [
        ("standard_reconciler_creation", VALID_API_SERVER_HOST, None, False, CRDReconciler),
        ("kcp_reconciler_creation", VALID_API_SERVER_HOST, None, True, APIBindingReconciler),
        ("success_in_non-existent-dir", VALID_API_SERVER_HOST, "non-existent", False, CRDReconciler),
    ],
)
def test_new_reconciler_success(tmp_path, name, host, subdir, kcp_enabled, expected):
    path = tmp_path / subdir if subdir else tmp_path
    reconciler = make_factory(kcp_enabled).new_reconciler(make_options(RestConfig(host), path))
    assert type(reconciler) is expected
    assert path.is_dir()


@pytest.mark.parametrize(
    "name, host, kcp_enabled",
    [
        ("failure_in_discovery_client_creation", None, False),
        ("failure_in_rest_mapper_creation", SCHEMELESS_API_SERVER_HOST, False),
        ("failure_in_virtual_workspace_config_retrieval_(kcp)", SCHEMELESS_API_SERVER_HOST, True),
        ("failure_in_kcp_discovery_client_factory_creation", None, True),
        ("failure_in_cluster_path_resolver_creation", SCHEMELESS_API_SERVER_HOST, True),
    ],
)
def test_new_reconciler_failure(tmp_path, name, host, kcp_enabled):
    cfg = None if host is None else RestConfig(host)
    with pytest.raises(RuntimeError):
        make_factory(kcp_enabled).new_reconciler(make_options(cfg, tmp_path))


def test_standard_reconciler_targets_kubernetes_cluster(tmp_path):
    options = make_options(RestConfig(VALID_API_SERVER_HOST), tmp_path)
    reconciler = make_factory(False).new_reconciler(options)
    assert reconciler.cluster_name == "kubernetes"
    assert reconciler.client is options.client


def test_kcp_reconciler_uses_virtual_workspace_host(tmp_path):
    reconciler = make_factory(True).new_reconciler(
        make_options(RestConfig(VALID_API_SERVER_HOST), tmp_path)
    )
    assert reconciler.discovery_factory.config.host == VALID_API_SERVER_HOST
    assert reconciler.path_resolver.config.host == VALID_API_SERVER_HOST


def test_default_pre_reconcile_writes_initial_schema(tmp_path):
    factory = ReconcilerFactory(False, fake_client_factory, fake_rest_mapper_factory)
    factory.new_reconciler(make_options(RestConfig(VALID_API_SERVER_HOST), tmp_path))
    assert (tmp_path / "kubernetes").read_bytes() == b'{"definitions":{}}\n'


def test_pre_reconcile_failure_is_reported(tmp_path):
    def failing(resolver, io):
        raise SchemaError("boom")

    factory = ReconcilerFactory(
        False, fake_client_factory, fake_rest_mapper_factory, pre_reconcile_func=failing
    )
    with pytest.raises(RuntimeError, match="failed to generate OpenAPI Schema for cluster"):
        factory.new_reconciler(make_options(RestConfig(VALID_API_SERVER_HOST), tmp_path))


class StaticResolver:
    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error

    def resolve(self):
        if self.error is not None:
            raise self.error
        return self.payload


def test_pre_reconcile_stores_resolved_schema(tmp_path):
    io = IOHandler(tmp_path)
    pre_reconcile(StaticResolver(payload=b'{"a":1}'), io)
    assert io.read("kubernetes") == b'{"a":1}'


def test_pre_reconcile_resolve_error(tmp_path):
    io = IOHandler(tmp_path)
    with pytest.raises(SchemaError, match="failed to resolve server JSON schema"):
        pre_reconcile(StaticResolver(error=ValueError("down")), io)
    assert not (tmp_path / "kubernetes").exists()