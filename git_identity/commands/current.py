from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..app import GidApp
from ..errors import GitError
from ..repository import read_global_option
from ..resolver import Resolution, context_for_repository


def run(app: GidApp, path: Optional[Path] = None) -> Optional[Resolution]:
    try:
        repo = app.repository(path)
    except GitError as exc:
        print(f"Not in a git repository ({exc})")
        name = read_global_option("user.name")
        email = read_global_option("user.email")
        print(f"Global identity: {name or '-'} <{email or '-'}>")
        return None
    name = repo.configured_name()
    email = repo.configured_email()
    known = app.store.find_by_email(email) if email else None
    print(f"Repository: {repo.working_dir}")
    remote = repo.origin_url()
    if remote:
        print(f"Remote:     {remote}")
    suffix = f" [{known.id}]" if known else ""
    print(f"Configured: {name or '-'} <{email or '-'}>{suffix}")
    resolution = app.resolver().try_resolve(context_for_repository(repo))
    if resolution is None:
        print("Resolved:   none (no override, rule or default applies)")
        return None
    print(f"Resolved:   {resolution.identity.label()} via {resolution.describe()}")
    if not email or email.lower() != resolution.identity.email.lower():
        print(f"Mismatch:   run `gid switch` to apply {resolution.identity.id}")
    return resolution
