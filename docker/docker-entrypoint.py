#!/usr/bin/env python3

from __future__ import annotations

import os
import shutil
import stat
import sys
from pathlib import Path


CONFIG_ENV_PREFIX = "DOCKERX_CONFIG"
DEFAULT_COMMAND = "zsh"


def _staged_config_pairs(env: dict[str, str] | None = None) -> list[tuple[Path, Path]]:
    source = os.environ if env is None else env
    raw_count = str(source.get(f"{CONFIG_ENV_PREFIX}_COUNT", "")).strip()
    if not raw_count:
        return []
    if not raw_count.isdigit():
        raise RuntimeError(f"Config staging failed: {CONFIG_ENV_PREFIX}_COUNT={raw_count!r} is not a count.")

    pairs: list[tuple[Path, Path]] = []
    for index in range(int(raw_count)):
        src = str(source.get(f"{CONFIG_ENV_PREFIX}_SRC_{index}", "")).strip()
        dst = str(source.get(f"{CONFIG_ENV_PREFIX}_DST_{index}", "")).strip()
        if not src or not dst:
            raise RuntimeError(
                f"Config staging failed: index={index} src={src!r} dst={dst!r} "
                "both source and destination must be set."
            )
        pairs.append((Path(src), Path(dst)))
    return pairs


def _copy_staged_path(src: Path, dst: Path) -> None:
    if src.is_dir() and not src.is_symlink():
        shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
        return
    if dst.exists() or dst.is_symlink():
        return
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst, follow_symlinks=False)


def _make_owner_writable(root: Path) -> None:
    # Staged mounts are read-only, so copies keep read-only modes unless relaxed.
    paths = [root]
    if root.is_dir() and not root.is_symlink():
        paths.extend(root.rglob("*"))
    for path in paths:
        if path.is_symlink():
            continue
        try:
            mode = stat.S_IMODE(path.stat().st_mode)
            path.chmod(mode | stat.S_IWUSR)
        except OSError:
            continue


def _restrict_ssh_dir(home: Path) -> None:
    ssh_dir = home / ".ssh"
    if not ssh_dir.is_dir():
        return
    try:
        ssh_dir.chmod(0o700)
        for path in ssh_dir.rglob("*"):
            if path.is_file() and not path.is_symlink():
                path.chmod(0o600)
    except OSError as exc:
        print(f"dockerx: unable to restrict {ssh_dir}: {exc}", file=sys.stderr)


def _stage_host_config(env: dict[str, str] | None = None) -> None:
    for src, dst in _staged_config_pairs(env):
        if not src.exists() and not src.is_symlink():
            print(f"dockerx: staged config missing, skipping: {src}", file=sys.stderr)
            continue
        try:
            _copy_staged_path(src, dst)
            _make_owner_writable(dst)
        except OSError as exc:
            raise RuntimeError(
                f"Config staging failed: src={str(src)!r} dst={str(dst)!r} copy error={exc}"
            ) from exc


def _entrypoint_main() -> None:
    command = list(sys.argv[1:]) if sys.argv[1:] else [DEFAULT_COMMAND]
    home = os.environ.get("HOME", "").strip() or "/tmp"
    os.environ["HOME"] = home

    _stage_host_config()
    _restrict_ssh_dir(Path(home))

    os.execvp(command[0], command)


if __name__ == "__main__":
    _entrypoint_main()
