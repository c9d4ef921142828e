"""Discovery of the virtual workspace that serves the tenancy API export."""

from __future__ import annotations

from dataclasses import replace

from .clusterpath import ObjectClient, RestConfig, _parse_url, _with_path

API_EXPORT_KIND = "APIExport"
TENANCY_API_EXPORT = "tenancy.kcp.io"


def virtual_workspace_config(config: RestConfig, client: ObjectClient) -> RestConfig:
    """Return a copy of ``config`` pointed at the tenancy export's first virtual workspace."""
    try:
        _parse_url(config.host)
    except ValueError as exc:
        raise ValueError(f"failed to parse config Host: {exc}") from exc

    try:
        api_export = client.get(API_EXPORT_KIND, TENANCY_API_EXPORT)
    except Exception as exc:
        raise LookupError(f"failed to get tenancy APIExport: {exc}") from exc

    status = api_export.get("status") or {}
    virtual_workspaces = status.get("virtualWorkspaces") or []
    if not virtual_workspaces:
        raise LookupError("failed to get at least one virtual workspace: empty virtual workspace list")

    try:
        workspace_url = _parse_url(virtual_workspaces[0].get("url", ""))
    except ValueError as exc:
        raise ValueError(f"failed to parse virtual workspace config URL: {exc}") from exc

    return replace(config, host=_with_path(config.host, workspace_url.path))