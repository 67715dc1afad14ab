"""Runtime user identity for non-root sandboxes.

The image's ``/etc/passwd``, ``/etc/group`` and ``/etc/shadow`` are read out of the
image, the host uid/gid is merged in when the image does not know it, and the
merged tables are bind-mounted read-only over the originals. The image itself is
never modified and the synthesized shadow entry carries no password.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from dockerx.errors import IdentityOverlayError
from dockerx.mounts import CONTAINER_USER, MountSpec
from dockerx.runtime import ContainerRuntime


LOGGER = logging.getLogger("dockerx")

PASSWD_PATH = "/etc/passwd"
GROUP_PATH = "/etc/group"
SHADOW_PATH = "/etc/shadow"
DEFAULT_LOGIN_SHELL = "/bin/zsh"
SHADOW_LAST_CHANGE_DAYS = 19793
PASSWD_MIN_FIELDS = 7
GROUP_MIN_FIELDS = 3
SHADOW_MIN_FIELDS = 1
IDENTITY_TEMP_PREFIX = "dockerx-identity-"

Cleanup = Callable[[], None]


@dataclass(frozen=True)
class IdentityOverlay:
    passwd: str
    group: str
    shadow: str
    username: str
    home: str
    uid: int
    gid: int
    shell: str = DEFAULT_LOGIN_SHELL


def _noop() -> None:
    return None


def parse_uid_gid(uid_gid: str) -> tuple[int, int]:
    uid_text, sep, gid_text = str(uid_gid or "").partition(":")
    if not sep:
        raise IdentityOverlayError(f"invalid uid:gid: {uid_gid!r}")
    try:
        uid = int(uid_text)
    except ValueError as exc:
        raise IdentityOverlayError(f"invalid uid in {uid_gid!r}: {exc}") from exc
    try:
        gid = int(gid_text)
    except ValueError as exc:
        raise IdentityOverlayError(f"invalid gid in {uid_gid!r}: {exc}") from exc
    return uid, gid


def split_lines(content: str) -> list[str]:
    return [line for line in content.replace("\r\n", "\n").split("\n") if line]


def join_lines(lines: list[str]) -> str:
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def _records(lines: list[str], min_fields: int) -> Iterator[list[str]]:
    # Short lines are skipped rather than rejected so odd base images still work.
    for line in lines:
        fields = line.split(":")
        if len(fields) < min_fields:
            continue
        yield fields


def _username_for_uid(passwd_lines: list[str], uid: int) -> str | None:
    uid_text = str(uid)
    for fields in _records(passwd_lines, PASSWD_MIN_FIELDS):
        if fields[2] == uid_text:
            return fields[0]
    return None


def _has_gid(group_lines: list[str], gid: int) -> bool:
    gid_text = str(gid)
    return any(fields[2] == gid_text for fields in _records(group_lines, GROUP_MIN_FIELDS))


def _has_shadow_user(shadow_lines: list[str], username: str) -> bool:
    return any(fields[0] == username for fields in _records(shadow_lines, SHADOW_MIN_FIELDS))


def ensure_runtime_identity(
    passwd_base: str,
    group_base: str,
    shadow_base: str,
    *,
    username: str,
    home: str,
    uid: int,
    gid: int,
    shell: str = DEFAULT_LOGIN_SHELL,
) -> IdentityOverlay:
    """Merge a runtime user for ``uid:gid`` into the base credential tables.

    An existing passwd entry for ``uid`` wins over ``username``; its name is then
    used for the group and shadow entries as well.
    """
    requested = str(username or "").strip() or CONTAINER_USER
    passwd_lines = split_lines(passwd_base)
    group_lines = split_lines(group_base)
    shadow_lines = split_lines(shadow_base)

    runtime_user = _username_for_uid(passwd_lines, uid)
    if runtime_user is None:
        runtime_user = requested
        passwd_lines.append(f"{runtime_user}:x:{uid}:{gid}:{runtime_user} user:{home}:{shell}")
        LOGGER.debug("Synthesized passwd entry for %s (uid=%s gid=%s)", runtime_user, uid, gid)
    else:
        LOGGER.debug("Reusing image user %s for uid=%s", runtime_user, uid)

    if not _has_gid(group_lines, gid):
        group_lines.append(f"{runtime_user}:x:{gid}:")
        LOGGER.debug("Synthesized group entry %s (gid=%s)", runtime_user, gid)

    if not _has_shadow_user(shadow_lines, runtime_user):
        shadow_lines.append(f"{runtime_user}::{SHADOW_LAST_CHANGE_DAYS}:0:99999:7:::")
        LOGGER.debug("Synthesized shadow entry for %s", runtime_user)

    return IdentityOverlay(
        passwd=join_lines(passwd_lines),
        group=join_lines(group_lines),
        shadow=join_lines(shadow_lines),
        username=runtime_user,
        home=home,
        uid=uid,
        gid=gid,
        shell=shell,
    )


def _write_file(path: str, content: str, mode: int) -> None:
    with open(path, "w", encoding="utf-8", errors="surrogateescape") as handle:
        handle.write(content)
    os.chmod(path, mode)


def write_identity_overlay(overlay: IdentityOverlay) -> tuple[list[MountSpec], Cleanup]:
    try:
        tmp_dir = tempfile.mkdtemp(prefix=IDENTITY_TEMP_PREFIX)
    except OSError as exc:
        raise IdentityOverlayError(f"create identity temp dir: {exc}") from exc
    LOGGER.debug("Created identity overlay directory %s", tmp_dir)

    def cleanup() -> None:
        LOGGER.debug("Removing identity overlay directory %s", tmp_dir)
        shutil.rmtree(tmp_dir, ignore_errors=True)

    files = (
        ("passwd", overlay.passwd, 0o644, PASSWD_PATH),
        ("group", overlay.group, 0o644, GROUP_PATH),
        ("shadow", overlay.shadow, 0o400, SHADOW_PATH),
    )
    mounts: list[MountSpec] = []
    for name, content, mode, target in files:
        path = os.path.join(tmp_dir, name)
        try:
            _write_file(path, content, mode)
        except OSError as exc:
            cleanup()
            raise IdentityOverlayError(f"write {name} overlay: {exc}") from exc
        mounts.append(MountSpec(source=path, destination=target, read_only=True))
    return mounts, cleanup


def prepare_identity_mounts(
    runtime: ContainerRuntime,
    image: str,
    *,
    username: str,
    home: str,
    uid_gid: str,
) -> tuple[list[MountSpec], Cleanup]:
    uid, gid = parse_uid_gid(uid_gid)
    if uid == 0:
        return [], _noop

    passwd_base = runtime.read_image_file(image, PASSWD_PATH)
    group_base = runtime.read_image_file(image, GROUP_PATH)
    shadow_base = runtime.read_image_file(image, SHADOW_PATH)

    overlay = ensure_runtime_identity(
        passwd_base,
        group_base,
        shadow_base,
        username=username,
        home=home,
        uid=uid,
        gid=gid,
    )
    return write_identity_overlay(overlay)


@contextmanager
def identity_overlay(
    runtime: ContainerRuntime,
    image: str,
    *,
    username: str,
    home: str,
    uid_gid: str,
) -> Iterator[list[MountSpec]]:
    mounts, cleanup = prepare_identity_mounts(
        runtime,
        image,
        username=username,
        home=home,
        uid_gid=uid_gid,
    )
    try:
        yield mounts
    finally:
        cleanup()
