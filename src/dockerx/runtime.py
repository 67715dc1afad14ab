from __future__ import annotations

import abc
import logging
import shutil
import subprocess
from typing import Sequence

from dockerx.errors import IdentityOverlayError, PreflightError, RuntimeInvocationError


LOGGER = logging.getLogger("dockerx")

DEFAULT_RUNTIME_EXECUTABLE = "docker"
DEFAULT_IMAGE_READ_TIMEOUT_SECONDS = 120.0


class ContainerRuntime(abc.ABC):
    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Executable name used in user-facing messages."""

    @abc.abstractmethod
    def ensure_available(self) -> None:
        """Raise PreflightError when the runtime executable cannot be located."""

    @abc.abstractmethod
    def read_image_file(self, image: str, path: str) -> str:
        """Return the contents of ``path`` inside ``image`` without running its entrypoint."""

    @abc.abstractmethod
    def run(self, args: Sequence[str]) -> None:
        """Run the runtime with ``args`` attached to the controlling terminal."""


class DockerRuntime(ContainerRuntime):
    def __init__(
        self,
        executable: str = DEFAULT_RUNTIME_EXECUTABLE,
        *,
        read_timeout: float | None = DEFAULT_IMAGE_READ_TIMEOUT_SECONDS,
    ) -> None:
        self._executable = executable
        self._read_timeout = read_timeout

    @property
    def name(self) -> str:
        return self._executable

    def ensure_available(self) -> None:
        if shutil.which(self._executable) is None:
            raise PreflightError(f"{self._executable} executable not found in PATH")

    def read_image_file(self, image: str, path: str) -> str:
        cmd = [self._executable, "run", "--rm", "--entrypoint", "cat", image, path]
        LOGGER.debug("Reading %s from image %s", path, image)
        # Credential tables may carry non-UTF-8 bytes; surrogateescape keeps them intact.
        try:
            result = subprocess.run(
                cmd,
                check=False,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                capture_output=True,
                timeout=self._read_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise IdentityOverlayError(
                f"read {path} from image {image}: timed out after {self._read_timeout:g}s"
            ) from exc
        except OSError as exc:
            raise IdentityOverlayError(f"read {path} from image {image}: {exc}") from exc
        if result.returncode != 0:
            detail = result.stderr.strip().encode("utf-8", "surrogateescape").decode("utf-8", "replace")
            raise IdentityOverlayError(f"read {path} from image {image}: exit status {result.returncode} ({detail})")
        return result.stdout

    def run(self, args: Sequence[str]) -> None:
        cmd = [self._executable, *args]
        LOGGER.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, check=False)
        except OSError as exc:
            raise RuntimeInvocationError(f"{self._executable} run failed: {exc}") from exc
        if result.returncode != 0:
            raise RuntimeInvocationError(f"{self._executable} run failed: exit status {result.returncode}")
