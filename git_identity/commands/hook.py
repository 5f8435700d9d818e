from __future__ import annotations

import logging
import os
from pathlib import Path

from ..app import GidApp
from ..enforcement import BYPASS_ENV
from ..errors import GitError
from ..fs_utils import atomic_write_text
from ..repository import global_config_path, read_global_option, unset_global_option, write_global_fields

logger = logging.getLogger(__name__)

HOOK_NAME = "pre-commit"
HOOK_SIGNATURE = "# installed by gid"
GLOBAL_HOOKS_DIR = Path("~/.config/git/hooks")

PRE_COMMIT_SCRIPT = f"""#!/bin/sh
{HOOK_SIGNATURE}: verifies the commit identity before committing

case "${{{BYPASS_ENV}}}" in
    1|true|yes|on) exit 0 ;;
esac

if ! command -v gid >/dev/null 2>&1; then
    echo "gid: command not found, skipping identity check" >&2
    exit 0
fi

exec gid check --hook
"""


def _global_hooks_dir() -> Path:
    return GLOBAL_HOOKS_DIR.expanduser()


def _hooks_dir(app: GidApp, global_scope: bool) -> Path:
    if global_scope:
        return _global_hooks_dir()
    return app.repository().hooks_dir()


def is_gid_hook(path: Path) -> bool:
    try:
        return HOOK_SIGNATURE in path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False


def install(app: GidApp, *, global_scope: bool = False, force: bool = False) -> Path:
    hook_path = _hooks_dir(app, global_scope) / HOOK_NAME
    if hook_path.exists() and not is_gid_hook(hook_path) and not force:
        raise GitError(f"{hook_path} already exists and was not installed by gid; pass --force to replace it")
    atomic_write_text(hook_path, PRE_COMMIT_SCRIPT)
    os.chmod(hook_path, 0o755)
    print(f"Installed {HOOK_NAME} hook at {hook_path}")
    if global_scope:
        write_global_fields({"core.hooksPath": str(hook_path.parent)})
        print(f"Set core.hooksPath = {hook_path.parent} in {global_config_path()}")
    return hook_path


def uninstall(app: GidApp, *, global_scope: bool = False) -> bool:
    hook_path = _hooks_dir(app, global_scope) / HOOK_NAME
    removed = False
    if not hook_path.exists():
        print(f"No {HOOK_NAME} hook at {hook_path}")
    elif not is_gid_hook(hook_path):
        logger.warning("%s was not installed by gid; leaving it in place", hook_path)
    else:
        hook_path.unlink()
        removed = True
        print(f"Removed {hook_path}")
    if global_scope and read_global_option("core.hooksPath") == str(hook_path.parent):
        unset_global_option("core.hooksPath")
        print("Unset global core.hooksPath")
    return removed


def status(app: GidApp) -> dict[str, bool]:
    states: dict[str, bool] = {}
    try:
        local = app.repository().hooks_dir() / HOOK_NAME
    except GitError:
        print("Local:  not in a git repository")
    else:
        states["local"] = local.exists() and is_gid_hook(local)
        print(f"Local:  {'installed' if states['local'] else 'not installed'} ({local})")
    global_hook = _global_hooks_dir() / HOOK_NAME
    hooks_path = read_global_option("core.hooksPath")
    states["global"] = (
        hooks_path is not None
        and Path(hooks_path).expanduser() == global_hook.parent
        and is_gid_hook(global_hook)
    )
    print(f"Global: {'installed' if states['global'] else 'not installed'} ({global_hook})")
    return states
