from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from dockerx.errors import UnsafeMountError


CONTAINER_HOME = "/home/dev"
CONTAINER_USER = "dev"
CONTAINER_APP_DIR = "/app"
CONFIG_STAGE_ROOT = "/tmp/dockerx-config"
MOUNT_DELIMITER = ","


@dataclass(frozen=True)
class MountSpec:
    source: str
    destination: str
    read_only: bool = True

    def to_option(self) -> str:
        """Render as the value of a docker ``--mount`` option."""
        ensure_mount_safe(self)
        option = f"type=bind,src={self.source},dst={self.destination}"
        if self.read_only:
            option += ",readonly"
        return option


def ensure_path_safe(path: str, *, label: str) -> None:
    if MOUNT_DELIMITER in path:
        raise UnsafeMountError(f"{label} contains an unsupported comma: {path!r}")


def ensure_mount_safe(mount: MountSpec) -> None:
    ensure_path_safe(mount.source, label="mount source")
    ensure_path_safe(mount.destination, label="mount destination")


def ensure_mounts_safe(mounts: Iterable[MountSpec]) -> None:
    for mount in mounts:
        ensure_mount_safe(mount)


def stage_path(index: int) -> str:
    return f"{CONFIG_STAGE_ROOT}/{index}"
