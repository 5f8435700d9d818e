from __future__ import annotations

import contextlib
import logging
import shutil
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from pydantic import ValidationError

from .config import Config, Identity, Rule, Settings
from .errors import ConfigError, RuleError
from .fs_utils import atomic_write_text, exclusive_lock
from .rules import RuleSet, validate_pattern

logger = logging.getLogger(__name__)


class IdentityStore:
    """In-memory identities, rules and settings with the id uniqueness invariant."""

    def __init__(
        self,
        identities: Iterable[Identity] = (),
        rules: Iterable[Rule] = (),
        settings: Optional[Settings] = None,
    ) -> None:
        self._identities: list[Identity] = []
        seen: set[str] = set()
        for identity in identities:
            if identity.id in seen:
                raise ConfigError(f"Duplicate identity id '{identity.id}'")
            seen.add(identity.id)
            self._identities.append(identity)
        self._rules: list[Rule] = []
        for index, rule in enumerate(rules):
            try:
                validate_pattern(rule.kind, rule.pattern)
            except RuleError as exc:
                raise ConfigError(f"Rule {index} ({rule.pattern!r}): {exc}") from exc
            self._rules.append(rule)
        self.settings = settings or Settings()
        for index, rule in self.dangling_rules():
            logger.warning(
                "Rule %d (%s) references unknown identity '%s'; it will be ignored",
                index,
                rule.pattern,
                rule.identity,
            )
        default = self.settings.default_identity
        if default and self.get(default) is None:
            logger.warning("Default identity '%s' is not configured; ignoring it", default)

    @classmethod
    def from_config(cls, config: Config) -> "IdentityStore":
        return cls(config.identities, config.rules, config.settings)

    def to_config(self) -> Config:
        return Config(
            identities=list(self._identities),
            rules=list(self._rules),
            settings=self.settings,
        )

    @property
    def identities(self) -> tuple[Identity, ...]:
        return tuple(self._identities)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules)

    @property
    def known_ids(self) -> frozenset[str]:
        return frozenset(identity.id for identity in self._identities)

    @property
    def default_identity(self) -> Optional[str]:
        default = self.settings.default_identity
        if default and self.get(default) is not None:
            return default
        return None

    def rule_set(self) -> RuleSet:
        return RuleSet.of(self._rules)

    def get(self, identity_id: str) -> Optional[Identity]:
        for identity in self._identities:
            if identity.id == identity_id:
                return identity
        return None

    def require(self, identity_id: str) -> Identity:
        identity = self.get(identity_id)
        if identity is None:
            raise ConfigError(f"Identity '{identity_id}' not found")
        return identity

    def find_by_email(self, email: str) -> Optional[Identity]:
        wanted = email.strip().lower()
        for identity in self._identities:
            if identity.email.lower() == wanted:
                return identity
        return None

    def dangling_rules(self) -> list[tuple[int, Rule]]:
        known = self.known_ids
        return [(i, rule) for i, rule in enumerate(self._rules) if rule.identity not in known]

    def references(self, identity_id: str) -> list[int]:
        return [i for i, rule in enumerate(self._rules) if rule.identity == identity_id]

    def add_identity(self, identity: Identity) -> None:
        if self.get(identity.id) is not None:
            raise ConfigError(f"Identity '{identity.id}' already exists")
        self._identities.append(identity)

    def edit_identity(self, identity_id: str, **changes: Any) -> Identity:
        current = self.require(identity_id)
        if "id" in changes and changes["id"] != identity_id:
            raise ConfigError("Identity ids cannot be changed")
        payload = current.model_dump()
        payload.update({key: value for key, value in changes.items() if key != "id"})
        try:
            updated = Identity.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"Invalid identity '{identity_id}': {exc}") from exc
        index = self._identities.index(current)
        self._identities[index] = updated
        return updated

    def remove_identity(self, identity_id: str, *, cascade: bool = False) -> Identity:
        identity = self.require(identity_id)
        referencing = self.references(identity_id)
        is_default = self.settings.default_identity == identity_id
        if (referencing or is_default) and not cascade:
            reasons = []
            if referencing:
                reasons.append("rule(s) " + ", ".join(str(i) for i in referencing))
            if is_default:
                reasons.append("the default identity setting")
            raise ConfigError(
                f"Identity '{identity_id}' is referenced by {' and '.join(reasons)}; "
                "remove those first or pass --cascade"
            )
        self._rules = [rule for rule in self._rules if rule.identity != identity_id]
        if is_default:
            self.settings = self.settings.model_copy(update={"default_identity": None})
        self._identities.remove(identity)
        return identity

    def add_rule(self, rule: Rule) -> int:
        validate_pattern(rule.kind, rule.pattern)
        if self.get(rule.identity) is None:
            raise ConfigError(f"Identity '{rule.identity}' does not exist")
        self._rules.append(rule)
        return len(self._rules) - 1

    def remove_rule(self, index: int) -> Rule:
        if index < 0 or index >= len(self._rules):
            raise ConfigError(
                f"Rule index {index} out of range (total {len(self._rules)} rules)"
            )
        return self._rules.pop(index)

    def set_default(self, identity_id: Optional[str]) -> None:
        if identity_id is not None:
            self.require(identity_id)
        self.settings = self.settings.model_copy(update={"default_identity": identity_id})

    def merge(self, other: "IdentityStore") -> tuple[int, int, int]:
        """Append unknown identities and all rules from ``other``."""
        added = skipped = 0
        for identity in other.identities:
            if self.get(identity.id) is None:
                self._identities.append(identity)
                added += 1
            else:
                skipped += 1
        self._rules.extend(other.rules)
        return added, skipped, len(other.rules)


class ConfigRepository:
    """Loads the identity store and persists it under an exclusive lock."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> IdentityStore:
        return IdentityStore.from_config(Config.load(self.path))

    def save(self, store: IdentityStore) -> None:
        with exclusive_lock(self.path):
            self._write(store.to_config())

    @contextlib.contextmanager
    def update(self) -> Iterator[IdentityStore]:
        """Yield a fresh store; it is written back only if the block succeeds."""
        with exclusive_lock(self.path):
            store = self.load()
            yield store
            self._write(store.to_config())

    def replace(self, config: Config, *, backup: bool = True) -> Optional[Path]:
        IdentityStore.from_config(config)
        with exclusive_lock(self.path):
            backup_path: Optional[Path] = None
            if backup and self.path.exists():
                backup_path = self.path.with_name(self.path.name + ".backup")
                shutil.copy2(self.path, backup_path)
            self._write(config)
        return backup_path

    def _write(self, config: Config) -> None:
        try:
            atomic_write_text(self.path, config.dump())
        except OSError as exc:
            raise ConfigError(f"Could not write {self.path}: {exc}") from exc
        logger.debug("Wrote configuration to %s", self.path)
