"""Throwaway repositories and an isolated HOME for tests that touch git."""

import os
import tempfile
import unittest
from pathlib import Path
from typing import Optional, Sequence
from unittest.mock import patch

import git

ISOLATED_ENV_DROP = (
    "GIT_AUTHOR_EMAIL",
    "GIT_AUTHOR_NAME",
    "GIT_COMMITTER_EMAIL",
    "GIT_COMMITTER_NAME",
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_CONFIG_GLOBAL",
    "GID_SKIP",
    "GID_CONFIG_DIR",
    "XDG_CONFIG_HOME",
)


class GitHomeTestCase(unittest.TestCase):
    """Runs each test with HOME pointing at an empty temporary directory."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.home = Path(os.path.realpath(tmp.name))
        env = {k: v for k, v in os.environ.items() if k not in ISOLATED_ENV_DROP}
        env.update({"HOME": str(self.home), "GIT_CONFIG_NOSYSTEM": "1"})
        patcher = patch.dict(os.environ, env, clear=True)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.config_path = self.home / ".config" / "gid" / "config.yaml"

    def make_repo(
        self,
        relative: str,
        *,
        remote: Optional[str] = None,
        authors: Sequence[tuple[str, str]] = (),
    ) -> git.Repo:
        path = self.home / relative
        path.mkdir(parents=True, exist_ok=True)
        repo = git.Repo.init(path)
        self.addCleanup(repo.close)
        if remote:
            repo.create_remote("origin", remote)
        for index, (name, email) in enumerate(authors):
            file_path = path / f"file{index}.txt"
            file_path.write_text(f"{index}\n", encoding="utf-8")
            repo.index.add([str(file_path)])
            actor = git.Actor(name, email)
            repo.index.commit(f"change {index}", author=actor, committer=actor)
        return repo

    def set_local_identity(self, repo: git.Repo, name: str, email: str) -> None:
        with repo.config_writer(config_level="repository") as writer:
            writer.set_value("user", "name", name)
            writer.set_value("user", "email", email)
