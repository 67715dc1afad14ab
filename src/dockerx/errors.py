from __future__ import annotations

import click


class DockerxError(click.ClickException):
    """Base class for every failure surfaced by the launcher."""


class PreflightError(DockerxError):
    """Configuration problem detected before any mount or identity work."""


class IdentityOverlayError(DockerxError):
    """The identity overlay could not be read from the image or materialized."""


class UnsafeMountError(DockerxError):
    """A path would corrupt the --mount option syntax."""


class RuntimeInvocationError(DockerxError):
    """The container runtime could not be started or exited with an error."""
