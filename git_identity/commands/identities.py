from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..app import GidApp
from ..errors import ConfigError, GitError
from ..config import Identity
from .output import identity_lines

logger = logging.getLogger(__name__)


def list_identities(app: GidApp, *, verbose: bool = False) -> None:
    identities = app.store.identities
    if not identities:
        print("No identities configured. Add one with `gid add`.")
        return
    current_email: Optional[str] = None
    try:
        current_email = app.repository().configured_email()
    except GitError:
        current_email = None
    default = app.store.default_identity
    for identity in identities:
        active = current_email is not None and current_email.lower() == identity.email.lower()
        marker = "*" if active else " "
        lines = identity_lines(identity, marker=marker)
        if identity.id == default:
            lines[0] += " (default)"
        print(lines[0])
        if verbose:
            for line in lines[1:]:
                print(line)


def add(
    app: GidApp,
    *,
    identity_id: str,
    name: str,
    email: str,
    description: Optional[str] = None,
    ssh_key: Optional[Path] = None,
    gpg_key: Optional[str] = None,
    gpg_sign: bool = False,
) -> Identity:
    try:
        identity = Identity(
            id=identity_id,
            name=name,
            email=email,
            description=description,
            ssh_key_path=ssh_key,
            gpg_key_id=gpg_key,
            gpg_sign=gpg_sign,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid identity: {exc}") from exc
    if identity.ssh_key_path and not identity.expanded_ssh_key().exists():
        logger.warning("SSH key %s does not exist", identity.ssh_key_path)
    with app.configs.update() as store:
        store.add_identity(identity)
    app.reload()
    print(f"Added identity {identity.label()}")
    return identity


def edit(app: GidApp, identity_id: str, **changes: Any) -> Identity:
    changes = {key: value for key, value in changes.items() if value is not None}
    if not changes:
        raise ConfigError("Nothing to change; pass at least one field")
    with app.configs.update() as store:
        updated = store.edit_identity(identity_id, **changes)
    app.reload()
    print(f"Updated identity {updated.label()}")
    return updated


def remove(app: GidApp, identity_id: str, *, cascade: bool = False) -> Identity:
    with app.configs.update() as store:
        dropped_rules = len(store.references(identity_id))
        removed = store.remove_identity(identity_id, cascade=cascade)
    app.reload()
    print(f"Removed identity {removed.label()}")
    if cascade and dropped_rules:
        print(f"Removed {dropped_rules} rule(s) that referenced it")
    return removed


def set_default(app: GidApp, identity_id: Optional[str], *, clear: bool = False) -> Optional[str]:
    if not clear and identity_id is None:
        default = app.store.default_identity
        print(f"Default identity: {default}" if default else "No default identity set.")
        return default
    target = None if clear else identity_id
    with app.configs.update() as store:
        store.set_default(target)
    app.reload()
    print(f"Default identity set to {target}" if target else "Default identity cleared.")
    return target
