"""
Git access through GitPython.

Reads the fetch remote, user configuration and commit history of a working
tree, and writes identity fields into repository or global configuration.
"""

from __future__ import annotations

import configparser
import logging
import os
import re
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

import git
from git.config import GitConfigParser, get_config_path

from .config import Identity
from .errors import GitError

logger = logging.getLogger(__name__)

AUTHOR_EMAIL_ENV = "GIT_AUTHOR_EMAIL"
AUTHOR_NAME_ENV = "GIT_AUTHOR_NAME"

_SIGNING_KEYS = ("user.signingkey", "commit.gpgsign")
_SSH_COMMAND_RE = re.compile(r"^ssh -i .+ -o IdentitiesOnly=yes$")


class Scope(str, Enum):
    LOCAL = "local"
    GLOBAL = "global"


@dataclass(frozen=True, slots=True)
class CommitRecord:
    hash: str
    author_email: str
    author_name: str = ""
    timestamp: int = 0
    summary: str = ""


def config_fields_for(identity: Identity) -> dict[str, str]:
    fields = {
        "user.name": identity.name,
        "user.email": identity.email,
    }
    if identity.gpg_key_id:
        fields["user.signingkey"] = identity.gpg_key_id
        fields["commit.gpgsign"] = "true" if identity.gpg_sign else "false"
    ssh_key = identity.expanded_ssh_key()
    if ssh_key is not None:
        fields["core.sshCommand"] = f"ssh -i {shlex.quote(str(ssh_key))} -o IdentitiesOnly=yes"
    return fields


def stale_fields(fields: dict[str, str], current: dict[str, Optional[str]]) -> list[str]:
    """
    Keys left behind by a previously applied identity that ``fields`` no longer sets.

    ``current`` holds the values presently configured at the target scope. An
    ``core.sshCommand`` is only considered stale when it has the form written
    by ``config_fields_for``; a hand-written command is left alone.
    """
    stale = []
    if "user.signingkey" not in fields:
        stale.extend(key for key in _SIGNING_KEYS if current.get(key) is not None)
    if "core.sshCommand" not in fields:
        command = current.get("core.sshCommand")
        if command is not None and _SSH_COMMAND_RE.match(command):
            stale.append("core.sshCommand")
    return stale


def _read_option(reader: GitConfigParser, section: str, option: str) -> Optional[str]:
    with reader:
        value = _get_value(reader, section, option)
    return value


def _get_value(parser: GitConfigParser, section: str, option: str) -> Optional[str]:
    value = parser.get(section, option, fallback=None)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _write_fields(writer: GitConfigParser, fields: dict[str, str], *, prune: bool = False) -> list[str]:
    """Set ``fields``; with ``prune``, also drop what an earlier identity left behind."""
    with writer:
        removed = []
        if prune:
            current = {
                key: _get_value(writer, *key.split(".", 1))
                for key in (*_SIGNING_KEYS, "core.sshCommand")
            }
            removed = stale_fields(fields, current)
        for key in removed:
            section, option = key.split(".", 1)
            writer.remove_option(section, option)
            if not writer.items(section):
                writer.remove_section(section)
        for key, value in fields.items():
            section, option = key.split(".", 1)
            writer.set_value(section, option, value)
    return removed


def global_config_path() -> Path:
    return Path(get_config_path("global"))


def read_global_option(key: str) -> Optional[str]:
    path = global_config_path()
    if not path.exists():
        return None
    section, option = key.split(".", 1)
    try:
        return _read_option(GitConfigParser(str(path), read_only=True), section, option)
    except (OSError, configparser.Error) as exc:
        raise GitError(f"Could not read {path}: {exc}") from exc


def write_global_fields(fields: dict[str, str], *, prune: bool = False) -> list[str]:
    path = global_config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)
        return _write_fields(GitConfigParser(str(path), read_only=False), fields, prune=prune)
    except (OSError, configparser.Error, git.exc.GitError) as exc:
        raise GitError(f"Could not update {path}: {exc}") from exc


def unset_global_option(key: str) -> bool:
    path = global_config_path()
    if not path.exists():
        return False
    section, option = key.split(".", 1)
    try:
        with GitConfigParser(str(path), read_only=False) as writer:
            if not writer.has_option(section, option):
                return False
            writer.remove_option(section, option)
    except (OSError, configparser.Error, git.exc.GitError) as exc:
        raise GitError(f"Could not update {path}: {exc}") from exc
    return True


def apply_global(identity: Identity) -> dict[str, str]:
    fields = config_fields_for(identity)
    removed = write_global_fields(fields, prune=True)
    if removed:
        logger.debug("Removed stale %s from %s", ", ".join(removed), global_config_path())
    logger.debug("Applied %s to %s", identity.id, global_config_path())
    return fields


class GitRepository:
    """A non-bare working tree located by searching upward from a path."""

    def __init__(self, repo: git.Repo) -> None:
        self._repo = repo

    @classmethod
    def discover(cls, path: Optional[Path] = None, *, search_parents: bool = True) -> "GitRepository":
        start = Path(path) if path is not None else Path.cwd()
        try:
            repo = git.Repo(start, search_parent_directories=search_parents)
        except (git.InvalidGitRepositoryError, git.NoSuchPathError) as exc:
            raise GitError(f"{start} is not inside a git repository") from exc
        if repo.bare or repo.working_tree_dir is None:
            raise GitError(f"{start} is a bare repository")
        try:
            with repo.config_reader(config_level="repository") as reader:
                reader.sections()
        except (OSError, configparser.Error, git.exc.GitError) as exc:
            raise GitError(f"{repo.working_tree_dir}: unreadable git configuration: {exc}") from exc
        return cls(repo)

    @property
    def working_dir(self) -> Path:
        return Path(self._repo.working_tree_dir).resolve()

    @property
    def git_dir(self) -> Path:
        return Path(self._repo.git_dir)

    def hooks_dir(self) -> Path:
        configured = self.get_option("core.hooksPath")
        if configured:
            hooks = Path(configured).expanduser()
            return hooks if hooks.is_absolute() else self.working_dir / hooks
        return Path(self._repo.common_dir) / "hooks"

    def remote_names(self) -> list[str]:
        return [remote.name for remote in self._repo.remotes]

    def origin_url(self) -> Optional[str]:
        """Fetch URL of ``origin``, else of the first configured remote."""
        names = self.remote_names()
        if not names:
            return None
        name = "origin" if "origin" in names else names[0]
        return self.get_option(f'remote "{name}".url')

    def get_option(self, key: str, scope: Optional[Scope] = None) -> Optional[str]:
        section, _, option = key.rpartition(".")
        level = {Scope.LOCAL: "repository", Scope.GLOBAL: "global"}.get(scope) if scope else None
        try:
            reader = self._repo.config_reader(config_level=level) if level else self._repo.config_reader()
            return _read_option(reader, section, option)
        except (OSError, configparser.Error, git.exc.GitError) as exc:
            raise GitError(f"Could not read git configuration: {exc}") from exc

    def configured_email(self) -> Optional[str]:
        return os.environ.get(AUTHOR_EMAIL_ENV) or self.get_option("user.email")

    def configured_name(self) -> Optional[str]:
        return os.environ.get(AUTHOR_NAME_ENV) or self.get_option("user.name")

    def apply_identity(self, identity: Identity, scope: Scope = Scope.LOCAL) -> dict[str, str]:
        if scope is Scope.GLOBAL:
            return apply_global(identity)
        fields = config_fields_for(identity)
        try:
            removed = _write_fields(
                self._repo.config_writer(config_level="repository"), fields, prune=True
            )
        except (OSError, configparser.Error, git.exc.GitError) as exc:
            raise GitError(f"Could not update repository configuration: {exc}") from exc
        if removed:
            logger.debug("Removed stale %s from %s", ", ".join(removed), self.working_dir)
        logger.debug("Applied %s to %s", identity.id, self.working_dir)
        return fields

    def has_commits(self) -> bool:
        return self._repo.head.is_valid()

    def iter_commits(self, rev: str = "HEAD", max_count: Optional[int] = None) -> Iterator[CommitRecord]:
        """Stream commits newest first without loading the history into memory."""
        if not self.has_commits():
            return
        kwargs = {"max_count": max_count} if max_count else {}
        try:
            for commit in self._repo.iter_commits(rev, **kwargs):
                author = commit.author
                summary = commit.summary
                if isinstance(summary, bytes):
                    summary = summary.decode("utf-8", errors="replace")
                yield CommitRecord(
                    hash=commit.hexsha,
                    author_email=(author.email or "") if author else "",
                    author_name=(author.name or "") if author else "",
                    timestamp=commit.authored_date,
                    summary=summary,
                )
        except (ValueError, git.exc.GitError) as exc:
            raise GitError(f"Could not read history of {self.working_dir}: {exc}") from exc
