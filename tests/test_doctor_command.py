from pathlib import Path

from git_identity.app import GidApp
from git_identity.commands.doctor import run
from git_identity.config import Identity, Rule, RuleKind, Settings
from git_identity.repository import GitRepository, Scope
from git_identity.store import ConfigRepository, IdentityStore

from git_fixtures import GitHomeTestCase

WORK = Identity(id="work", name="Work Person", email="a@co.com")
PERSONAL = Identity(id="personal", name="Me", email="me@example.org")


class TestDoctorCommand(GitHomeTestCase):
    def _app(self, store: IdentityStore) -> GidApp:
        ConfigRepository(self.config_path).save(store)
        app = GidApp.create(self.config_path)
        self.addCleanup(app.close)
        return app

    def test_reports_matching_identity(self) -> None:
        raw = self.make_repo("work/api")
        self.set_local_identity(raw, "Work Person", "a@co.com")
        app = self._app(
            IdentityStore([WORK], [Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work")])
        )
        report = run(app, path=self.home / "work" / "api")
        self.assertTrue(report.ok)
        joined = "\n".join(report.checks)
        self.assertIn("Identity: OK", joined)
        self.assertIn("Rules: OK", joined)
        self.assertIn("Hook: SKIPPED", joined)
        self.assertIn("Pre-commit check: ENABLED", joined)

    def test_reports_error_for_mismatch_and_fix_applies_identity(self) -> None:
        raw = self.make_repo("work/api")
        self.set_local_identity(raw, "Me", "b@gmail.com")
        app = self._app(
            IdentityStore([WORK], [Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work")])
        )
        report = run(app, path=self.home / "work" / "api")
        self.assertFalse(report.ok)
        self.assertIn("Identity: ERROR", "\n".join(report.checks))

        fixed = run(app, path=self.home / "work" / "api", fix=True)
        self.assertTrue(fixed.ok)
        repo = GitRepository.discover(self.home / "work" / "api")
        self.assertEqual(repo.get_option("user.email", Scope.LOCAL), "a@co.com")

    def test_reports_dangling_rules_and_unknown_default(self) -> None:
        store = IdentityStore(
            [PERSONAL],
            [Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work")],
            Settings(default_identity="work"),
        )
        app = self._app(store)
        outside = self.home / "plain"
        outside.mkdir()
        report = run(app, path=outside)
        self.assertFalse(report.ok)
        joined = "\n".join(report.checks)
        self.assertIn("Rules: ERROR (dangling: 0 -> work)", joined)
        self.assertIn("Default identity: ERROR", joined)
        self.assertIn("Repository: SKIPPED", joined)

    def test_reports_missing_ssh_key(self) -> None:
        identity = PERSONAL.model_copy(update={"ssh_key_path": Path("~/.ssh/id_missing")})
        app = self._app(IdentityStore([identity]))
        outside = self.home / "plain"
        outside.mkdir()
        report = run(app, path=outside)
        self.assertFalse(report.ok)
        self.assertIn("SSH key [personal]: ERROR", "\n".join(report.checks))
