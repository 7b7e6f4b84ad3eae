from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Iterable, Mapping

import click


IMAGE_TAG = "riff-doc"
CONTAINER_MOUNT_PATH = "/var/doxerlive"
CONTAINER_SHELL = "ash"
UID_ENV_VAR = "THEUID"
USER_NAME_ENV_VAR = "USER"
LOG_LEVEL_ENV_VAR = "RIFF_DOC_LOG_LEVEL"
LOG_LEVEL_CHOICES = ("critical", "error", "warning", "info", "debug")
DEFAULT_LOG_LEVEL = "warning"
INTERRUPTED_EXIT_CODE = 130

LOGGER = logging.getLogger("riff_doc")
LOGGER.addHandler(logging.NullHandler())


class DockerCommandError(click.ClickException):
    """A docker invocation returned non-zero; the tool exits with the same status."""

    def __init__(self, cmd: Iterable[str], returncode: int) -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        super().__init__(f"Command failed with exit code {returncode}: {' '.join(self.cmd)}")
        self.exit_code = returncode


def _normalize_log_level(raw_value: str | None) -> str:
    normalized = str(raw_value or "").strip().lower()
    if normalized in LOG_LEVEL_CHOICES:
        return normalized
    return DEFAULT_LOG_LEVEL


def _configure_logging(level: str) -> None:
    normalized = _normalize_log_level(level)
    handler = logging.StreamHandler(sys.__stderr__)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    LOGGER.handlers.clear()
    LOGGER.addHandler(handler)
    LOGGER.setLevel(getattr(logging, normalized.upper(), logging.WARNING))
    LOGGER.propagate = False


def _run(cmd: Iterable[str], cwd: Path | None = None) -> int:
    command = list(cmd)
    LOGGER.debug("Running: %s", " ".join(command))
    result = subprocess.run(command, cwd=str(cwd) if cwd else None, check=False)
    LOGGER.debug("Exit code %d: %s", result.returncode, command[:2])
    # killed by signal N: report 128+N like a shell
    if result.returncode < 0:
        return 128 - result.returncode
    return result.returncode


def _resolve_invoking_uid(env: Mapping[str, str] | None = None) -> int:
    source = os.environ if env is None else env
    user_name = str(source.get(USER_NAME_ENV_VAR, "")).strip()
    try:
        import pwd
    except ImportError as exc:
        raise click.ClickException("Resolving a user id requires a POSIX account database") from exc
    if not user_name:
        return os.getuid()
    try:
        return int(pwd.getpwnam(user_name).pw_uid)
    except KeyError as exc:
        raise click.ClickException(f"Unknown user name: {user_name}") from exc


def _build_command(tag: str = IMAGE_TAG) -> list[str]:
    return ["docker", "build", "--network=host", "-t", tag, "."]


def _run_command(uid: int, workdir: Path, tag: str = IMAGE_TAG) -> list[str]:
    return [
        "docker",
        "run",
        "--rm",
        "-i",
        "-t",
        "-e",
        f"{UID_ENV_VAR}={uid}",
        "-v",
        f"{workdir}:{CONTAINER_MOUNT_PATH}",
        tag,
        CONTAINER_SHELL,
    ]


def _build_image(context: Path, tag: str = IMAGE_TAG) -> None:
    click.echo(f"Building image '{tag}' from {context}")
    cmd = _build_command(tag)
    returncode = _run(cmd, cwd=context)
    if returncode != 0:
        raise DockerCommandError(cmd, returncode)


def _run_container(workdir: Path, uid: int, tag: str = IMAGE_TAG) -> int:
    return _run(_run_command(uid, workdir, tag))


@click.command(help="Build the riff-doc image and open a shell in it with the current directory mounted")
@click.pass_context
def main(ctx: click.Context) -> None:
    _configure_logging(os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL))

    if shutil.which("docker") is None:
        raise click.ClickException("docker command not found in PATH")

    cwd = Path.cwd()
    try:
        _build_image(cwd)

        uid = _resolve_invoking_uid()
        LOGGER.debug("Passing %s=%d into '%s'", UID_ENV_VAR, uid, IMAGE_TAG)
        returncode = _run_container(cwd, uid)
    except KeyboardInterrupt:
        LOGGER.debug("Interrupted; exiting with %d", INTERRUPTED_EXIT_CODE)
        returncode = INTERRUPTED_EXIT_CODE
    ctx.exit(returncode)


if __name__ == "__main__":
    main()
