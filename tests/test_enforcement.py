import unittest
from pathlib import Path

from git_identity.config import Identity, Rule, RuleKind, Settings
from git_identity.enforcement import BYPASS_ENV, EnforcementCheck, HookState, bypass_requested
from git_identity.resolver import ResolutionContext, Resolver
from git_identity.store import IdentityStore

WORK = Identity(id="work", name="Work Person", email="a@co.com")

REPO = Path("/srv/code/work/api")
CONTEXT = ResolutionContext(path=REPO)


def make_check(settings: Settings | None = None, *, with_rule: bool = True) -> EnforcementCheck:
    rules = [Rule(kind=RuleKind.PATH, pattern="/srv/code/work/**", identity="work")] if with_rule else []
    store = IdentityStore([WORK], rules, settings or Settings())
    return EnforcementCheck(Resolver.from_store(store), store.settings)


class TestEnforcement(unittest.TestCase):
    def test_mismatch_is_blocked(self) -> None:
        check = make_check()
        decision = check.run(CONTEXT, "b@gmail.com")
        self.assertIs(decision.state, HookState.BLOCKED)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.expected.id, "work")
        self.assertIn("a@co.com", decision.message)
        self.assertIs(check.state, HookState.BLOCKED)

    def test_matching_email_is_allowed_case_insensitively(self) -> None:
        decision = make_check().run(CONTEXT, "A@CO.com")
        self.assertTrue(decision.allowed)
        self.assertFalse(decision.bypassed)

    def test_unresolved_context_fails_open(self) -> None:
        decision = make_check(with_rule=False).run(CONTEXT, "b@gmail.com")
        self.assertIs(decision.state, HookState.ALLOWED)
        self.assertIsNone(decision.expected)

    def test_missing_email_is_blocked(self) -> None:
        decision = make_check().run(CONTEXT, None)
        self.assertIs(decision.state, HookState.BLOCKED)
        self.assertIn("unset", decision.message)

    def test_bypass_forces_allowed_and_warns(self) -> None:
        check = make_check()
        with self.assertLogs("git_identity.enforcement", level="WARNING") as logs:
            decision = check.run(CONTEXT, "b@gmail.com", bypass=True)
        self.assertTrue(decision.allowed)
        self.assertTrue(decision.bypassed)
        self.assertIn("bypassed", logs.output[0])

    def test_disabled_check_allows_without_resolving(self) -> None:
        decision = make_check(Settings(pre_commit_check=False)).run(CONTEXT, "b@gmail.com")
        self.assertTrue(decision.allowed)
        self.assertIsNone(decision.expected)

    def test_strict_mode_requires_matching_name(self) -> None:
        strict = Settings(strict_mode=True)
        self.assertIs(
            make_check(strict).run(CONTEXT, "a@co.com", "Someone Else").state,
            HookState.BLOCKED,
        )
        self.assertIs(
            make_check(strict).run(CONTEXT, "a@co.com", "Work Person").state,
            HookState.ALLOWED,
        )
        self.assertIs(
            make_check().run(CONTEXT, "a@co.com", "Someone Else").state,
            HookState.ALLOWED,
        )

    def test_check_runs_once(self) -> None:
        check = make_check()
        self.assertIs(check.state, HookState.UNCHECKED)
        check.run(CONTEXT, "a@co.com")
        with self.assertRaises(RuntimeError):
            check.run(CONTEXT, "a@co.com")

    def test_bypass_requested_reads_flag_and_environment(self) -> None:
        self.assertTrue(bypass_requested(True, {}))
        self.assertFalse(bypass_requested(False, {}))
        for value in ("1", "true", "YES", "on"):
            with self.subTest(value=value):
                self.assertTrue(bypass_requested(False, {BYPASS_ENV: value}))
        for value in ("0", "", "no"):
            with self.subTest(value=value):
                self.assertFalse(bypass_requested(False, {BYPASS_ENV: value}))


if __name__ == "__main__":
    unittest.main()
