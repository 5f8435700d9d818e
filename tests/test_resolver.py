import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from git_identity.config import Identity, Rule, RuleKind, Settings
from git_identity.errors import ResolutionError
from git_identity.resolver import ResolutionContext, ResolutionSource, Resolver
from git_identity.store import IdentityStore

WORK = Identity(id="work", name="Work Person", email="a@co.com")
PERSONAL = Identity(id="personal", name="Me", email="me@example.org")


def make_resolver(rules=(), default=None, identities=(WORK, PERSONAL)) -> Resolver:
    store = IdentityStore(identities, rules, Settings(default_identity=default))
    return Resolver.from_store(store)


class TestResolver(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.home = Path(os.path.realpath(tmp.name))
        env = patch.dict(os.environ, {"HOME": str(self.home)})
        env.start()
        self.addCleanup(env.stop)

    def test_scenario_path_rule(self) -> None:
        resolver = make_resolver(
            [Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work", priority=100)],
            identities=(WORK,),
        )
        resolution = resolver.resolve_identity(ResolutionContext(path=self.home / "work" / "proj"))
        self.assertEqual(resolution.identity.id, "work")
        self.assertIs(resolution.source, ResolutionSource.RULE)
        self.assertEqual(resolution.rule.index, 0)

    def test_scenario_remote_rule(self) -> None:
        resolver = make_resolver(
            [Rule(kind=RuleKind.REMOTE, pattern="github.com/my-company/*", identity="work", priority=50)],
            identities=(WORK,),
        )
        context = ResolutionContext(
            path=self.home / "other",
            remote_url="git@github.com:my-company/x.git",
        )
        self.assertEqual(resolver.resolve_identity(context).identity.id, "work")

    def test_override_outranks_rules(self) -> None:
        resolver = make_resolver(
            [Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work", priority=1000)],
            default="work",
        )
        context = ResolutionContext(path=self.home / "work" / "x", override="personal")
        resolution = resolver.resolve_identity(context)
        self.assertEqual(resolution.identity.id, "personal")
        self.assertIs(resolution.source, ResolutionSource.OVERRIDE)
        self.assertIsNone(resolution.rule)

    def test_unknown_override_falls_through_to_rules(self) -> None:
        resolver = make_resolver([Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work")])
        context = ResolutionContext(path=self.home / "work" / "x", override="ghost")
        with self.assertLogs("git_identity.resolver", level="WARNING"):
            resolution = resolver.resolve_identity(context)
        self.assertEqual(resolution.identity.id, "work")
        self.assertIs(resolution.source, ResolutionSource.RULE)

    def test_default_applies_when_no_rule_matches(self) -> None:
        resolver = make_resolver(
            [Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work")],
            default="personal",
        )
        resolution = resolver.resolve_identity(ResolutionContext(path=self.home / "play"))
        self.assertEqual(resolution.identity.id, "personal")
        self.assertIs(resolution.source, ResolutionSource.DEFAULT)
        self.assertEqual(resolution.describe(), "default identity")

    def test_unresolved_raises(self) -> None:
        resolver = make_resolver([Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work")])
        context = ResolutionContext(path=self.home / "play")
        with self.assertRaises(ResolutionError):
            resolver.resolve_identity(context)
        self.assertIsNone(resolver.try_resolve(context))

    def test_unknown_default_is_ignored(self) -> None:
        with self.assertLogs("git_identity.store", level="WARNING"):
            resolver = make_resolver(default="ghost")
        self.assertIsNone(resolver.default_identity)
        self.assertIsNone(resolver.try_resolve(ResolutionContext(path=self.home)))

    def test_resolution_is_pure(self) -> None:
        resolver = make_resolver(
            [
                Rule(kind=RuleKind.PATH, pattern="~/**", identity="personal", priority=10),
                Rule(kind=RuleKind.REMOTE, pattern="github.com/my-company/*", identity="work", priority=50),
            ],
            default="personal",
        )
        context = ResolutionContext(
            path=self.home / "src" / "x",
            remote_url="https://github.com/my-company/x.git",
        )
        first = resolver.resolve_identity(context)
        for _ in range(10):
            again = resolver.resolve_identity(context)
            self.assertEqual(again.identity, first.identity)
            self.assertIs(again.source, first.source)
        self.assertEqual(first.identity.id, "work")

    def test_describe_rule_names_the_pattern(self) -> None:
        resolver = make_resolver([Rule(kind=RuleKind.PATH, pattern="~/work/**", identity="work", priority=7)])
        resolution = resolver.resolve_identity(ResolutionContext(path=self.home / "work"))
        self.assertIn("~/work/**", resolution.describe())
        self.assertIn("priority 7", resolution.describe())


if __name__ == "__main__":
    unittest.main()
