from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import Settings
from .journal import EventJournal
from .repository import GitRepository
from .resolver import Resolver
from .store import ConfigRepository, IdentityStore


@dataclass
class GidApp:
    config_path: Path
    configs: ConfigRepository
    store: IdentityStore
    journal: EventJournal
    _resolver: Resolver | None = None

    @classmethod
    def create(cls, config_path: Path) -> "GidApp":
        configs = ConfigRepository(config_path)
        store = configs.load()
        journal = EventJournal.beside(config_path)
        return cls(config_path=config_path, configs=configs, store=store, journal=journal)

    @property
    def settings(self) -> Settings:
        return self.store.settings

    def resolver(self) -> Resolver:
        if self._resolver is None:
            self._resolver = Resolver.from_store(self.store)
        return self._resolver

    def reload(self) -> IdentityStore:
        """Re-read the store after a locked update wrote it back."""
        self.store = self.configs.load()
        self._resolver = None
        return self.store

    def repository(self, path: Optional[Path] = None) -> GitRepository:
        return GitRepository.discover(path)

    def known_emails(self) -> dict[str, str]:
        return {identity.email.lower(): identity.id for identity in self.store.identities}

    def close(self) -> None:
        self.journal.close()
