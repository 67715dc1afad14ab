from __future__ import annotations

import logging
import os
import sys
from contextlib import ExitStack

import click

from dockerx import __version__
from dockerx.config_mounts import discover_host_config_mounts, path_exists
from dockerx.errors import IdentityOverlayError, PreflightError
from dockerx.host import host_uid_gid, resolve_host_context, stdio_is_interactive
from dockerx.identity import identity_overlay
from dockerx.launch import DEFAULT_IMAGE, LaunchPlan, build_launch_plan
from dockerx.mounts import CONTAINER_APP_DIR, CONTAINER_HOME, CONTAINER_USER, MountSpec, stage_path
from dockerx.runtime import DEFAULT_IMAGE_READ_TIMEOUT_SECONDS, ContainerRuntime, DockerRuntime


DEFAULT_SHELL = "zsh"
IMAGE_ENV = "DOCKERX_IMAGE"
LOG_LEVEL_CHOICES = ("critical", "error", "warning", "info", "debug")

LOGGER = logging.getLogger("dockerx")
LOGGER.addHandler(logging.NullHandler())


def _configure_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    LOGGER.handlers.clear()
    LOGGER.addHandler(handler)
    LOGGER.setLevel(getattr(logging, level.upper(), logging.WARNING))
    LOGGER.propagate = False


def _default_runtime(read_timeout: float) -> ContainerRuntime:
    return DockerRuntime(read_timeout=read_timeout if read_timeout > 0 else None)


def render_plan(plan: LaunchPlan) -> str:
    lines = [
        f"Image: {plan.image}",
        f"Workdir: {plan.working_directory} -> {CONTAINER_APP_DIR} (rw)",
    ]
    if plan.config_mounts:
        lines.append("Host config mounts:")
        for index, mount in enumerate(plan.config_mounts):
            lines.append(f"  - {mount.source} -> {stage_path(index)} (ro), copied to {mount.destination} (rw)")
    else:
        lines.append("Host config mounts: none")
    if plan.passthrough_env_keys:
        lines.append(f"Passthrough env: {', '.join(plan.passthrough_env_keys)}")
    else:
        lines.append("Passthrough env: none")
    lines.append(f"Container command: {' '.join(plan.command)}")
    lines.append(f"Docker args: {' '.join(plan.arguments)}")
    return "\n".join(lines)


def launch(
    *,
    image: str,
    shell: str,
    command: tuple[str, ...],
    no_pull: bool,
    no_config: bool,
    dry_run: bool,
    verbose: bool,
    runtime: ContainerRuntime,
) -> None:
    if not image:
        raise PreflightError("image cannot be empty")
    runtime.ensure_available()
    host = resolve_host_context()

    config_mounts: list[MountSpec] = []
    if not no_config:
        config_mounts = discover_host_config_mounts(host.home_dir, os.environ.get, path_exists)

    uid_gid = host_uid_gid()
    resolved_command = command or (shell,)

    with ExitStack() as stack:
        identity_mounts: list[MountSpec] = []
        if not dry_run and uid_gid:
            try:
                identity_mounts = stack.enter_context(
                    identity_overlay(
                        runtime,
                        image,
                        username=CONTAINER_USER,
                        home=CONTAINER_HOME,
                        uid_gid=uid_gid,
                    )
                )
            except IdentityOverlayError as exc:
                LOGGER.debug("Identity overlay disabled: %s", exc.message)
                if verbose:
                    click.echo(f"Warning: identity overlay disabled: {exc.message}", err=True)

        plan = build_launch_plan(
            image,
            host.work_dir,
            resolved_command,
            config_mounts,
            identity_mounts,
            no_pull=no_pull,
            uid_gid=uid_gid,
            interactive=stdio_is_interactive(),
            lookup_env=os.environ.get,
        )

        if verbose or dry_run:
            click.echo(render_plan(plan))
        if dry_run:
            return

        runtime.run(plan.arguments)


@click.command(
    help="Launch a hardened, disposable container with the current directory mounted at /app",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option("--image", default=DEFAULT_IMAGE, show_default=True, envvar=IMAGE_ENV, help="Docker image to run")
@click.option("--shell", default=DEFAULT_SHELL, show_default=True, help="Shell to launch when no command is provided")
@click.option("--no-pull", is_flag=True, default=False, help="Disable forced pull policy for dockerx images")
@click.option("--no-config", is_flag=True, default=False, help="Disable automatic host config mounts")
@click.option("--dry-run", is_flag=True, default=False, help="Print docker command without executing it")
@click.option("--verbose", is_flag=True, default=False, help="Print resolved mounts and environment passthrough")
@click.option(
    "--identity-timeout",
    default=DEFAULT_IMAGE_READ_TIMEOUT_SECONDS,
    show_default=True,
    type=float,
    help="Seconds allowed for each image file read used by the identity overlay (0 disables the limit)",
)
@click.option(
    "--log-level",
    default="warning",
    show_default=True,
    type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False),
)
@click.version_option(__version__, prog_name="dockerx")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
def main(
    image: str,
    shell: str,
    no_pull: bool,
    no_config: bool,
    dry_run: bool,
    verbose: bool,
    identity_timeout: float,
    log_level: str,
    command: tuple[str, ...],
) -> None:
    _configure_logging("debug" if verbose else log_level)
    launch(
        image=str(image or "").strip(),
        shell=shell,
        command=tuple(command),
        no_pull=no_pull,
        no_config=no_config,
        dry_run=dry_run,
        verbose=verbose,
        runtime=_default_runtime(identity_timeout),
    )


if __name__ == "__main__":
    main()
