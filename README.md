# schemalistener

`schemalistener` keeps one OpenAPI v2 schema file per cluster. It gathers the
OpenAPI v3 documents that a Kubernetes or kcp API server publishes and keeps
only the server's preferred API groups. It marks each resource as namespaced
or cluster-scoped and attaches the resource categories. It then writes the
result to a directory, one file per cluster. The reconcilers rebuild the
schema when a CustomResourceDefinition or an APIBinding changes. They rewrite
the file only if the content differs from what is stored.

The package uses only the standard library. You pass in every object that
reaches a cluster: discovery clients, REST mappers, OpenAPI clients and object
clients. The package can therefore sit on top of any Kubernetes client, and
tests can replace every one of these objects with a fake.

## What the package expects from you

The package relies on duck typing and never checks these objects' types. It
calls only the methods listed here.

| Object | Methods the package calls |
| --- | --- |
| Discovery client | `server_preferred_resources()` returns a list of `APIResourceList`.<br>`openapi_v3()` returns an OpenAPI client. |
| OpenAPI client | `paths()` returns a mapping from a path such as `"apis/apps/v1"` to a group-version object. |
| Group-version object | `schema(accept)` returns the JSON document (bytes or str) for that path. |
| REST mapper | `is_namespaced(gvk)` returns a bool for a `GroupVersionKind`. |
| Object client | `get(kind, name)` returns the object as a mapping. |

When the object client is asked for an object that does not exist, it raises
`schemalistener.controllers.NotFoundError`.

## Building blocks

### Converting OpenAPI v3 components to v2 definitions

```python
from schemalistener.jsonconvert import convert_json

v2 = convert_json(b'{"components": {"schemas": {"a.b.v1.X": {"default": {}}}}}')
# b'{"definitions":{"a.b.v1.X":{}}}\n'
```

`convert_json` makes these changes:

* It moves `components.schemas` to `definitions`.
* It drops empty `default` objects.
* It replaces a single-entry `allOf` holding a `$ref` with that `$ref`. It
  also rewrites `components/schemas` in the reference to `definitions`.

The output is compact JSON with sorted keys, followed by a newline. If the
input is not valid JSON or has the wrong shape, `convert_json` raises
`ValueError`. `parse_json` applies the same rewriting, in place, to a document
that is already decoded.

### Building a schema

`schemalistener.schema_builder.SchemaBuilder(openapi_client, preferred_api_groups)`
collects the component schemas of every OpenAPI path whose group version is in
`preferred_api_groups`. It skips all other paths. You can then add information
to the schemas:

* `with_scope(rest_mapper)` sets `x-kubernetes-scope` to `Namespaced` or
  `Cluster`. It does this for every schema that names exactly one kind in
  `x-kubernetes-group-version-kind`.
* `with_crd_categories(crd)` sets `x-kubernetes-categories` on the schema of
  one `CustomResourceDefinition`.
* `with_api_resource_categories(resource_lists)` sets `x-kubernetes-categories`
  from discovery data.

Problems met along the way are collected in the builder's `errors` list. For
example, an unreachable OpenAPI client or a CRD without versions ends up there.
`complete()` returns the v2 JSON bytes. It raises `SchemaError` only when the
final document cannot be produced, and in that case the message includes the
collected errors.

The builder uses these helpers:

* `parse_group_version` parses `"group/version"` or `"version"`.
* `openapi_schema_key` returns the schema name with the group reversed, for
  example `io.example.core.v1alpha1.Account`.
* `crd_group_version_kind` returns a CRD's kind at its first listed version.

The value types are `GroupVersion`, `GroupVersionKind`, `APIResource`,
`APIResourceList` and `CustomResourceDefinition`.

### Resolving a cluster's schema

`schemalistener.schema_resolver` provides these:

* `resolve_schema(discovery, rest_mapper)` builds the full schema of a cluster,
  with scopes and discovery categories.
* `Resolver().resolve(discovery, rest_mapper)` does the same, for the kcp
  reconciler.
* `CRDResolver(discovery, rest_mapper)` offers two methods:
  * `resolve()` builds the full schema.
  * `resolve_api_schema(crd)` first checks that the CRD's kind appears among
    the server's preferred resources. If it does not, it raises `SchemaError`.
    If it does, it builds the schema with the CRD's categories.
* `preferred_api_groups_for_crd(gkv, resource_lists)` returns all preferred
  group versions. It raises `GVKNotPreferredError` when the kind is missing.
  `crd_group_kind_versions(crd)` builds its `GroupKindVersions` argument.
* `schema_for_path(preferred_api_groups, path, group_version)` fetches one
  path's schemas. It raises `InvalidPathError` when the path has no `/`, and
  `NotPreferredError` when its group is not preferred.

### Schema files

```python
from schemalistener.workspacefile import IOHandler

io = IOHandler("/var/lib/schemas")       # the directory is created if missing
io.write(b'{"key":"value"}', "root:org:team")
assert io.read("root:org:team") == b'{"key":"value"}'
```

`read` raises `FileNotFoundError` when no file exists for the cluster.

### Cluster addressing

* `clusterpath.RestConfig(host=...)` holds the API server address.
* `clusterpath.cluster_config(name, config)` returns a copy of the config whose
  host path is `/clusters/<name>`. It raises `ValueError` when the config is
  `None` or the host cannot be parsed.
* `clusterpath.ClusterPathResolver(config, scheme, client_factory)` builds
  clients for individual clusters. `client_for_cluster(name)` calls
  `client_factory(cluster_config, scheme)`.
* `clusterpath.path_for_cluster(name, client)` reads the `kcp.io/path`
  annotation of the `LogicalCluster` named `cluster`. It returns `root`
  unchanged, and raises `LookupError` when the object or the annotation is
  missing.
* `discoveryclient.DiscoveryFactory(config, discovery_factory, rest_mapper_factory)`
  builds a discovery client or a REST mapper for a named cluster. It does this
  through `client_for_cluster(name)` and `rest_mapper_for_cluster(name)`.
* `workspace_config.virtual_workspace_config(config, client)` returns a copy of
  the config that points at the first virtual workspace URL of the
  `tenancy.kcp.io` APIExport.

### Reconcilers

`schemalistener.controllers` has two reconcilers. You call `reconcile(Request(...))`
on them for each object that changes.

* `CRDReconciler(cluster_name, client, crd_resolver, io)` is for plain
  Kubernetes:
  * If the CRD still exists, it resolves the schema for that CRD.
  * If the client raises `NotFoundError`, it resolves the full schema.
  * It rewrites the stored file only if the content changed.
  * The file must already exist.
* `APIBindingReconciler(io, discovery_factory, schema_resolver, path_resolver)`
  is for kcp:
  * It skips clusters whose name starts with `system`.
  * It looks up the workspace path of the cluster.
  * It writes the workspace's file when the file is missing or out of date.

`reconciler_factory.ReconcilerFactory(kcp_enabled, discovery_client_factory, rest_mapper_factory, ...)`
wires up the right reconciler. `new_reconciler(ReconcilerOptions(...))`
returns one of the two:

* Without kcp, it returns a `CRDReconciler` for the file named `kubernetes`.
  Before that, it writes an initial schema with `pre_reconcile`.
* With kcp, it returns an `APIBindingReconciler` aimed at the tenancy virtual
  workspace.

Setup failures are raised as `RuntimeError`.

## What it does not do

`schemalistener` is a library. It has no command-line program. It does not
watch clusters or run a controller loop by itself: something else must call
`reconcile` when objects change. It does not speak HTTP to an API server; all
cluster access goes through the objects you pass in. It writes schema files
but does not serve them or build anything on top of them.