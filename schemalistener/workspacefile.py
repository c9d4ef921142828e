"""Storage of per-cluster schema files in one directory."""

from __future__ import annotations

import os
from pathlib import Path


class IOHandler:
    """Reads and writes one schema file per cluster name inside a directory."""

    def __init__(self, schemas_dir: str | os.PathLike[str]):
        self.schemas_dir = Path(schemas_dir)
        self.schemas_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, cluster_name: str) -> Path:
        return self.schemas_dir / cluster_name

    def read(self, cluster_name: str) -> bytes:
        """Return the stored schema; raises FileNotFoundError if there is none."""
        return self._path(cluster_name).read_bytes()

    def write(self, data: bytes, cluster_name: str) -> None:
        """Store the schema of a cluster, replacing any earlier one."""
        fd = os.open(self._path(cluster_name), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o777)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)