from __future__ import annotations

import logging
from pathlib import Path

from ..app import GidApp
from ..config import Config
from ..errors import ConfigError
from ..fs_utils import atomic_write_text
from ..store import IdentityStore

logger = logging.getLogger(__name__)


def export_config(app: GidApp, destination: Path) -> Path:
    destination = destination.expanduser()
    try:
        atomic_write_text(destination, app.store.to_config().dump())
    except OSError as exc:
        raise ConfigError(f"Could not write {destination}: {exc}") from exc
    store = app.store
    print(
        f"Exported {len(store.identities)} identities and {len(store.rules)} rules to {destination}"
    )
    return destination


def import_config(app: GidApp, source: Path, *, replace: bool = False) -> None:
    source = source.expanduser()
    if not source.is_file():
        raise ConfigError(f"{source} does not exist")
    incoming = Config.load(source)
    if replace:
        backup = app.configs.replace(incoming, backup=True)
        app.reload()
        if backup is not None:
            print(f"Backed up previous configuration to {backup}")
        print(
            f"Replaced configuration: {len(incoming.identities)} identities, "
            f"{len(incoming.rules)} rules"
        )
        return
    other = IdentityStore.from_config(incoming)
    with app.configs.update() as store:
        added, skipped, rules_added = store.merge(other)
        dangling = len(store.dangling_rules())
    app.reload()
    print(f"Imported {added} identities ({skipped} already present) and {rules_added} rules")
    if dangling:
        logger.warning("%d rule(s) reference identities that are not configured", dangling)
