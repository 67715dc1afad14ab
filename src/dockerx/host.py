from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dockerx.errors import PreflightError


@dataclass(frozen=True)
class HostContext:
    work_dir: str
    home_dir: str


def resolve_work_dir() -> str:
    try:
        cwd = os.getcwd()
    except OSError as exc:
        raise PreflightError(f"resolve current directory: {exc}") from exc
    return os.path.abspath(cwd)


def resolve_home_dir() -> str:
    try:
        home = Path.home()
    except (KeyError, RuntimeError) as exc:
        raise PreflightError(f"resolve user home directory: {exc}") from exc
    home_text = str(home)
    if not home_text or home_text == "~":
        raise PreflightError("resolve user home directory: home directory is not set")
    return home_text


def resolve_host_context() -> HostContext:
    return HostContext(work_dir=resolve_work_dir(), home_dir=resolve_home_dir())


def host_uid_gid() -> str | None:
    """Return the effective ``uid:gid`` of the invoking user, or None where it has no meaning."""
    if sys.platform.startswith("win"):
        return None
    geteuid = getattr(os, "geteuid", None)
    getegid = getattr(os, "getegid", None)
    if geteuid is None or getegid is None:
        return None
    return f"{int(geteuid())}:{int(getegid())}"


def stdio_is_interactive() -> bool:
    try:
        return sys.stdin.isatty() and sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False
