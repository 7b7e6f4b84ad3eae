#!/usr/bin/env python3

from __future__ import annotations

import os
import pwd
import subprocess
import sys


WORKDIR = "/var/doxerlive"
DEFAULT_COMMAND = "ash"
DEFAULT_USER = "doc"
UID_ENV_VAR = "THEUID"


def _run(command: list[str], check: bool = True) -> subprocess.CompletedProcess[str]:
    return subprocess.run(command, check=check, text=True, capture_output=True)


def _target_uid() -> int | None:
    raw = os.environ.get(UID_ENV_VAR, "").strip()
    if not raw:
        return None
    if not raw.isdigit():
        raise RuntimeError(f"{UID_ENV_VAR} must be a non-negative integer, got {raw!r}.")
    return int(raw, 10)


def _user_name_for_uid(uid: int) -> str | None:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return None


def _user_name_taken(name: str) -> bool:
    try:
        pwd.getpwnam(name)
    except KeyError:
        return False
    return True


def _ensure_user(uid: int) -> str:
    existing = _user_name_for_uid(uid)
    if existing:
        return existing

    name = DEFAULT_USER
    if _user_name_taken(name):
        name = f"{DEFAULT_USER}{uid}"
    # busybox adduser: -D no password, -H no home creation
    _run(["adduser", "-D", "-H", "-h", WORKDIR, "-s", "/bin/ash", "-u", str(uid), name])
    return name


def _enter() -> None:
    command = list(sys.argv[1:]) or [DEFAULT_COMMAND]

    uid = _target_uid()
    if uid is None or uid == 0 or os.geteuid() != 0:
        os.execvp(command[0], command)
        return

    user = _ensure_user(uid)
    os.execvp("su-exec", ["su-exec", user, *command])


if __name__ == "__main__":
    _enter()
