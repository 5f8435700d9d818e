from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..app import GidApp
from ..config import Identity
from ..errors import GitError, ResolutionError
from ..journal import EVENT_IDENTITY_SWITCHED
from ..project import MARKER_NAME, clear_project_override, write_project_override
from ..repository import GitRepository, Scope, apply_global
from ..resolver import Resolution, context_for_repository

logger = logging.getLogger(__name__)


def _apply(app: GidApp, identity: Identity, scope: Scope, repo: Optional[GitRepository], source: str) -> None:
    if scope is Scope.GLOBAL:
        fields = apply_global(identity)
        where = "global git config"
    else:
        if repo is None:
            repo = app.repository()
        fields = repo.apply_identity(identity, Scope.LOCAL)
        where = str(repo.working_dir)
    app.journal.append_event(
        EVENT_IDENTITY_SWITCHED,
        {
            "identity": identity.id,
            "scope": scope.value,
            "target": where,
            "source": source,
            "fields": sorted(fields),
        },
    )
    print(f"Switched to {identity.label()} ({scope.value}: {where})")


def resolve_current(app: GidApp, path: Optional[Path] = None) -> tuple[GitRepository, Resolution]:
    repo = app.repository(path)
    return repo, app.resolver().resolve_identity(context_for_repository(repo))


def switch(app: GidApp, identity_id: Optional[str] = None, *, scope: Scope = Scope.LOCAL) -> Identity:
    repo: Optional[GitRepository] = None
    if identity_id:
        identity = app.store.require(identity_id)
        source = "explicit"
    else:
        repo, resolution = resolve_current(app)
        identity = resolution.identity
        source = resolution.source.value
    _apply(app, identity, scope, repo, source)
    return identity


def auto(app: GidApp, *, if_enabled: bool = False) -> Optional[Identity]:
    """Apply the resolved identity to the current repository when it differs."""
    if if_enabled and not app.settings.auto_switch:
        logger.debug("auto_switch is disabled")
        return None
    try:
        repo, resolution = resolve_current(app)
    except (GitError, ResolutionError) as exc:
        if if_enabled:
            logger.debug("Nothing to switch: %s", exc)
            return None
        raise
    identity = resolution.identity
    current = repo.get_option("user.email", Scope.LOCAL)
    if current and current.lower() == identity.email.lower():
        current_name = repo.get_option("user.name", Scope.LOCAL)
        if current_name == identity.name:
            if not if_enabled:
                print(f"Already using {identity.label()}")
            return identity
    _apply(app, identity, Scope.LOCAL, repo, resolution.source.value)
    return identity


def pin(app: GidApp, identity_id: str) -> Path:
    identity = app.store.require(identity_id)
    repo = app.repository()
    marker = write_project_override(repo.working_dir, identity.id)
    print(f"Pinned {identity.label()} in {marker}")
    return marker


def unpin(app: GidApp) -> bool:
    repo = app.repository()
    removed = clear_project_override(repo.working_dir)
    if removed:
        print(f"Removed {repo.working_dir / MARKER_NAME}")
    else:
        print(f"No {MARKER_NAME} marker in {repo.working_dir}")
    return removed
