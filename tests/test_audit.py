import random
import tempfile
import unittest
from pathlib import Path

from git_identity.audit import (
    AuditFinding,
    AuditScanner,
    Classification,
    ScanIncomplete,
    StopSignal,
    discover_repositories,
    interruptible,
    summarize,
)
from git_identity.config import Identity
from git_identity.errors import GitError
from git_identity.repository import CommitRecord

WORK = Identity(id="work", name="Work Person", email="a@co.com")


def commits(emails):
    for index, email in enumerate(emails):
        yield CommitRecord(hash=f"{index:040x}", author_email=email, summary=f"commit {index}")


class TestAuditScanner(unittest.TestCase):
    def test_exactly_k_mismatches_of_n(self) -> None:
        rng = random.Random(1234)
        for _ in range(25):
            n = rng.randint(0, 40)
            k = rng.randint(0, n)
            emails = ["b@gmail.com"] * k + ["A@co.com"] * (n - k)
            rng.shuffle(emails)
            findings = list(AuditScanner(WORK).scan(commits(emails)))
            self.assertEqual(len(findings), n)
            mismatched = [f for f in findings if f.classification is Classification.MISMATCHED]
            self.assertEqual(len(mismatched), k)
            summary = summarize(findings)
            self.assertEqual((summary.total, summary.mismatched, summary.matched), (n, k, n - k))
            self.assertTrue(summary.complete)

    def test_findings_preserve_commit_order(self) -> None:
        records = list(commits(["x@y.z", "a@co.com", "q@r.s"]))
        findings = list(AuditScanner(WORK).scan(records))
        self.assertEqual([f.commit_hash for f in findings], [r.hash for r in records])
        self.assertEqual(findings[0].expected_identity_id, "work")
        self.assertEqual(findings[1].summary, "commit 1")

    def test_no_expectation_marks_everything_unresolved(self) -> None:
        findings = list(AuditScanner(None).scan(commits(["a@co.com", "b@gmail.com"])))
        self.assertEqual({f.classification for f in findings}, {Classification.UNRESOLVED})
        self.assertIsNone(findings[0].expected_identity_id)
        self.assertEqual(summarize(findings).unresolved, 2)

    def test_scan_is_lazy(self) -> None:
        consumed = []

        def stream():
            for record in commits(["a@co.com"] * 1000):
                consumed.append(record.hash)
                yield record

        findings = AuditScanner(WORK).scan(stream())
        self.assertEqual(consumed, [])
        next(findings)
        next(findings)
        self.assertEqual(len(consumed), 2)

    def test_scan_is_restartable_with_a_fresh_stream(self) -> None:
        scanner = AuditScanner(WORK)
        first = list(scanner.scan(commits(["a@co.com", "b@gmail.com"])))
        second = list(scanner.scan(commits(["a@co.com", "b@gmail.com"])))
        self.assertEqual(first, second)

    def test_to_record_carries_every_field(self) -> None:
        finding = next(AuditScanner(WORK).scan(commits(["b@gmail.com"])))
        record = finding.to_record()
        for key in ("commit_hash", "actual_author_email", "expected_identity_id", "classification"):
            self.assertIn(key, record)
        self.assertEqual(record["classification"], "mismatched")


class TestInterruption(unittest.TestCase):
    def test_keyboard_interrupt_becomes_incomplete_marker(self) -> None:
        def stream():
            yield from commits(["a@co.com", "b@gmail.com"])
            raise KeyboardInterrupt

        items = list(interruptible(AuditScanner(WORK).scan(stream())))
        self.assertEqual(len(items), 3)
        self.assertIsInstance(items[-1], ScanIncomplete)
        self.assertEqual(items[-1].processed, 2)
        summary = summarize(items)
        self.assertFalse(summary.complete)
        self.assertEqual(summary.total, 2)
        self.assertEqual(summary.incomplete_reason, "interrupted")

    def test_stop_request_ends_stream_after_current_finding(self) -> None:
        stop = StopSignal()
        items = []
        for item in interruptible(AuditScanner(WORK).scan(commits(["a@co.com"] * 10)), stop):
            items.append(item)
            if len(items) == 3:
                stop.request("SIGTERM")
        self.assertEqual(len(items), 4)
        self.assertEqual(items[-1], ScanIncomplete("SIGTERM", 3))

    def test_stream_ending_after_stop_request_is_incomplete(self) -> None:
        stop = StopSignal()

        def dying_stream():
            yield from commits(["a@co.com"])
            stop.request("interrupted by SIGINT")

        items = list(interruptible(AuditScanner(WORK).scan(dying_stream()), stop))
        self.assertIsInstance(items[-1], ScanIncomplete)
        self.assertFalse(summarize(items).complete)

    def test_git_failure_after_stop_request_is_incomplete(self) -> None:
        stop = StopSignal()

        def killed_stream():
            yield from commits(["a@co.com", "a@co.com"])
            stop.request("interrupted by SIGINT")
            raise GitError("git rev-list exited with 130")

        items = list(interruptible(AuditScanner(WORK).scan(killed_stream()), stop))
        self.assertEqual(items[-1], ScanIncomplete("interrupted by SIGINT", 2))

    def test_git_failure_without_stop_request_propagates(self) -> None:
        def broken_stream():
            yield from commits(["a@co.com"])
            raise GitError("bad object")

        with self.assertRaises(GitError):
            list(interruptible(AuditScanner(WORK).scan(broken_stream()), StopSignal()))

    def test_uninterrupted_stream_has_no_marker(self) -> None:
        items = list(interruptible(AuditScanner(WORK).scan(commits(["a@co.com"])), StopSignal()))
        self.assertEqual(len(items), 1)
        self.assertIsInstance(items[0], AuditFinding)

    def test_installed_handlers_are_restored(self) -> None:
        import signal

        before = signal.getsignal(signal.SIGTERM)
        with StopSignal().installed() as stop:
            self.assertIsNot(signal.getsignal(signal.SIGTERM), before)
            self.assertFalse(stop.requested)
        self.assertIs(signal.getsignal(signal.SIGTERM), before)


class TestSummary(unittest.TestCase):
    def test_offenders_are_counted_and_mapped_to_known_identities(self) -> None:
        emails = ["b@gmail.com", "B@gmail.com", "me@example.org", "a@co.com"]
        findings = AuditScanner(WORK).scan(commits(emails))
        summary = summarize(findings, {"me@example.org": "personal"})
        self.assertEqual(summary.offenders, {"b@gmail.com": 2, "me@example.org": 1})
        self.assertEqual(summary.offender_identities, {"me@example.org": "personal"})
        self.assertEqual(summary.to_record()["type"], "summary")

    def test_every_author_is_tallied_including_matched(self) -> None:
        emails = ["a@co.com", "A@co.com", "b@gmail.com", "a@co.com"]
        summary = summarize(AuditScanner(WORK).scan(commits(emails)))
        self.assertEqual(summary.authors, {"a@co.com": 3, "b@gmail.com": 1})
        self.assertEqual(summary.to_record()["authors"], {"a@co.com": 3, "b@gmail.com": 1})

        unresolved = summarize(AuditScanner(None).scan(commits(["x@y.io", "x@y.io"])))
        self.assertEqual(unresolved.authors, {"x@y.io": 2})
        self.assertEqual(unresolved.offenders, {})



class TestDiscovery(unittest.TestCase):
    def test_finds_repositories_within_depth(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve()
            for rel in ("a", "b/c", "d/e/f", "g/h/i/j", ".hidden/k"):
                (root / rel / ".git").mkdir(parents=True)
            (root / "a" / "nested" / ".git").mkdir(parents=True)
            found = discover_repositories(root, max_depth=3)
            self.assertEqual(found, [root / "a", root / "b" / "c", root / "d" / "e" / "f"])

    def test_missing_root_finds_nothing(self) -> None:
        self.assertEqual(discover_repositories(Path("/definitely/not/here")), [])


if __name__ == "__main__":
    unittest.main()
