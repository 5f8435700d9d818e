from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

CONFIG_DIR_ENV = "GID_CONFIG_DIR"
CONFIG_FILENAME = "config.yaml"
IDENTITY_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_identity_id(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("identity id cannot be empty")
    if not IDENTITY_ID_RE.match(value):
        raise ValueError(
            f"identity id {value!r} may only contain letters, digits, underscores and hyphens"
        )
    return value


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    description: Optional[str] = None
    ssh_key_path: Optional[Path] = None
    gpg_key_id: Optional[str] = None
    gpg_sign: bool = False

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return validate_identity_id(value)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name cannot be empty")
        return value

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value or "." not in value:
            raise ValueError(f"invalid email address: {value!r}")
        return value

    def expanded_ssh_key(self) -> Optional[Path]:
        if self.ssh_key_path is None:
            return None
        return Path(self.ssh_key_path).expanduser()

    def label(self) -> str:
        return f"[{self.id}] {self.name} <{self.email}>"


class RuleKind(str, Enum):
    PATH = "path"
    REMOTE = "remote"


class Rule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RuleKind
    pattern: str
    identity: str
    priority: int = 100
    enabled: bool = True
    description: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def _strip_pattern(cls, value: str) -> str:
        return value.strip()

    def label(self) -> str:
        return f"[{self.kind.value}] {self.pattern} -> {self.identity}"


class Settings(BaseModel):
    verbose: bool = True
    color: bool = True
    auto_switch: bool = False
    pre_commit_check: bool = True
    strict_mode: bool = False
    default_identity: Optional[str] = None


class Config(BaseModel):
    identities: List[Identity] = Field(default_factory=list)
    rules: List[Rule] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)

    @classmethod
    def from_document(cls, raw: Any, source: str = "<document>") -> "Config":
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ConfigError(f"{source}: expected a mapping at the top level")
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"{source}: {exc}") from exc

    @classmethod
    def parse(cls, text: str, source: str = "<document>") -> "Config":
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{source}: malformed YAML: {exc}") from exc
        return cls.from_document(raw, source)

    @classmethod
    def load(cls, path: Path) -> "Config":
        if not path.exists():
            return cls()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Could not read {path}: {exc}") from exc
        return cls.parse(text, str(path))

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def dump(self) -> str:
        return yaml.safe_dump(self.to_document(), sort_keys=False, allow_unicode=True)


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser() / CONFIG_FILENAME
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / "gid" / CONFIG_FILENAME


def find_config(explicit_path: Optional[Path]) -> Path:
    if explicit_path:
        return explicit_path.expanduser()
    return default_config_path()

