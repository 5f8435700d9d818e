import tempfile
import unittest
from pathlib import Path

from git_identity.journal import (
    EVENT_AUDIT_COMPLETE,
    EVENT_HOOK_BLOCKED,
    EVENT_IDENTITY_SWITCHED,
    JOURNAL_FILENAME,
    EventJournal,
)


class TestEventJournal(unittest.TestCase):
    def test_append_and_list_newest_first(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            journal = EventJournal.beside(Path(tmpdir) / "config.yaml")
            try:
                self.assertEqual(journal.path.name, JOURNAL_FILENAME)
                first = journal.append_event(EVENT_IDENTITY_SWITCHED, {"identity": "work"})
                second = journal.append_event(EVENT_HOOK_BLOCKED, {"expected": "work"})
                events = journal.list_events()
                self.assertEqual([e["id"] for e in events], [second, first])
                self.assertEqual(events[1]["payload"], {"identity": "work"})
                self.assertTrue(events[0]["created_at"])
            finally:
                journal.close()

    def test_filters_by_event_and_since(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            journal = EventJournal(Path(tmpdir) / "j.sqlite3")
            try:
                first = journal.append_event(EVENT_AUDIT_COMPLETE, {"total": 1})
                journal.append_event(EVENT_HOOK_BLOCKED)
                journal.append_event(EVENT_AUDIT_COMPLETE, {"total": 2})
                audits = journal.list_events(event=EVENT_AUDIT_COMPLETE)
                self.assertEqual([e["payload"]["total"] for e in audits], [2, 1])
                later = journal.list_events(since_id=first)
                self.assertEqual(len(later), 2)
                self.assertEqual(len(journal.list_events(limit=1)), 1)
            finally:
                journal.close()

    def test_events_survive_reopen(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "j.sqlite3"
            journal = EventJournal(path)
            journal.append_event(EVENT_IDENTITY_SWITCHED, {"identity": "personal"})
            journal.close()
            reopened = EventJournal(path)
            try:
                self.assertEqual(reopened.list_events()[0]["payload"]["identity"], "personal")
            finally:
                reopened.close()


if __name__ == "__main__":
    unittest.main()
