from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..app import GidApp
from ..errors import GitError
from ..project import MARKER_NAME, read_project_override
from ..repository import Scope
from ..resolver import context_for_repository
from . import hook as hook_cmd
from .output import disabled, enabled, error, ok as ok_line, skipped, warning


@dataclass(slots=True)
class DoctorReport:
    ok: bool
    checks: list[str]


def run(app: GidApp, *, path: Optional[Path] = None, fix: bool = False) -> DoctorReport:
    checks: list[str] = []
    ok = True
    store = app.store
    settings = app.settings

    if app.config_path.exists():
        checks.append(
            ok_line(
                "Config",
                f"{app.config_path} ({len(store.identities)} identities, {len(store.rules)} rules)",
            )
        )
    else:
        checks.append(warning("Config", f"{app.config_path} does not exist yet"))

    dangling = store.dangling_rules()
    if dangling:
        ok = False
        listed = ", ".join(f"{index} -> {rule.identity}" for index, rule in dangling)
        checks.append(error("Rules", f"dangling: {listed}"))
    elif store.rules:
        checks.append(ok_line("Rules", f"{len(store.rules)} rule(s)"))
    else:
        checks.append(skipped("Rules", "none configured"))

    configured_default = settings.default_identity
    if configured_default and store.default_identity is None:
        ok = False
        checks.append(error("Default identity", f"'{configured_default}' is not configured"))
    elif configured_default:
        checks.append(ok_line("Default identity", configured_default))
    else:
        checks.append(skipped("Default identity", "not set"))

    for identity in store.identities:
        key = identity.expanded_ssh_key()
        if key is not None and not key.exists():
            ok = False
            checks.append(error(f"SSH key [{identity.id}]", f"missing: {key}"))

    checks.append(enabled("Pre-commit check") if settings.pre_commit_check else disabled("Pre-commit check"))
    checks.append(enabled("Auto switch") if settings.auto_switch else disabled("Auto switch"))

    try:
        repo = app.repository(path)
    except GitError as exc:
        checks.append(skipped("Repository", str(exc)))
        return DoctorReport(ok=ok, checks=checks)

    checks.append(ok_line("Repository", str(repo.working_dir)))
    marker = repo.working_dir / MARKER_NAME
    if marker.exists():
        override = read_project_override(repo.working_dir)
        if override is None:
            checks.append(warning("Project override", f"{marker} is empty or invalid"))
        elif store.get(override) is None:
            checks.append(warning("Project override", f"unknown identity '{override}'"))
        else:
            checks.append(ok_line("Project override", override))

    resolution = app.resolver().try_resolve(context_for_repository(repo))
    email = repo.configured_email()
    if resolution is None:
        checks.append(skipped("Identity", f"nothing resolves here (configured <{email or 'unset'}>)"))
    else:
        expected = resolution.identity
        if email and email.lower() == expected.email.lower():
            checks.append(ok_line("Identity", f"{expected.id} via {resolution.describe()}"))
        elif fix:
            repo.apply_identity(expected, Scope.LOCAL)
            checks.append(ok_line("Identity", f"fixed: applied {expected.id} locally"))
        else:
            ok = False
            checks.append(
                error(
                    "Identity",
                    f"expected {expected.label()}, configured <{email or 'unset'}> (run `gid doctor --fix`)",
                )
            )

    hook_path = repo.hooks_dir() / hook_cmd.HOOK_NAME
    if hook_path.exists() and hook_cmd.is_gid_hook(hook_path):
        checks.append(ok_line("Hook", str(hook_path)))
    elif hook_path.exists():
        checks.append(warning("Hook", f"{hook_path} was not installed by gid"))
    else:
        checks.append(skipped("Hook", "run `gid hook install`"))

    return DoctorReport(ok=ok, checks=checks)
