"""Build OpenAPI v2 schema files for Kubernetes and kcp clusters and keep them up to date."""

__version__ = "0.1.0"