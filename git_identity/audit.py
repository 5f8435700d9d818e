from __future__ import annotations

import logging
import os
import signal
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional, Union

from .config import Identity
from .errors import GitError
from .repository import CommitRecord, GitRepository
from .resolver import Resolution, Resolver, context_for_repository

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_DEPTH = 3
_SKIP_DIRS = {"node_modules", "target", "vendor", "__pycache__", ".venv", "venv"}


class Classification(str, Enum):
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True, slots=True)
class AuditFinding:
    commit_hash: str
    actual_author_email: str
    expected_identity_id: Optional[str]
    classification: Classification
    author_name: str = ""
    timestamp: int = 0
    summary: str = ""

    def to_record(self) -> dict:
        return {
            "type": "finding",
            "commit_hash": self.commit_hash,
            "actual_author_email": self.actual_author_email,
            "expected_identity_id": self.expected_identity_id,
            "classification": self.classification.value,
            "author_name": self.author_name,
            "timestamp": self.timestamp,
            "summary": self.summary,
        }


@dataclass(frozen=True, slots=True)
class ScanIncomplete:
    """Emitted after the last finding when a scan stops before the history ends."""

    reason: str
    processed: int


AuditItem = Union[AuditFinding, ScanIncomplete]


class AuditScanner:
    """Classifies each commit author against one expected identity."""

    def __init__(self, resolution: Optional[Resolution | Identity]) -> None:
        if isinstance(resolution, Resolution):
            self.expected: Optional[Identity] = resolution.identity
        else:
            self.expected = resolution

    def classify(self, author_email: str) -> Classification:
        if self.expected is None:
            return Classification.UNRESOLVED
        if author_email.strip().lower() == self.expected.email.lower():
            return Classification.MATCHED
        return Classification.MISMATCHED

    def scan(self, commits: Iterable[CommitRecord]) -> Iterator[AuditFinding]:
        expected_id = self.expected.id if self.expected else None
        for commit in commits:
            yield AuditFinding(
                commit_hash=commit.hash,
                actual_author_email=commit.author_email,
                expected_identity_id=expected_id,
                classification=self.classify(commit.author_email),
                author_name=commit.author_name,
                timestamp=commit.timestamp,
                summary=commit.summary,
            )


class StopSignal:
    """Cooperative stop flag set from SIGINT/SIGTERM handlers."""

    def __init__(self) -> None:
        self.requested = False
        self.reason = ""

    def request(self, reason: str = "interrupted") -> None:
        self.requested = True
        self.reason = reason

    @contextmanager
    def installed(self) -> Iterator["StopSignal"]:
        def _handler(signum, _frame) -> None:
            self.request(f"interrupted by {signal.Signals(signum).name}")

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                previous[signum] = signal.signal(signum, _handler)
            except ValueError:
                # not the main thread
                continue
        try:
            yield self
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)


def interruptible(
    findings: Iterable[AuditFinding],
    stop: Optional[StopSignal] = None,
) -> Iterator[AuditItem]:
    """
    Pass findings through, ending with ``ScanIncomplete`` if the scan was cut short.

    A stop request (or a ``KeyboardInterrupt`` raised while the history is read)
    ends the stream after everything produced so far. A stop request that
    arrives while the underlying ``git`` process dies also counts as
    incomplete, even though the commit stream ended without an error.
    """
    processed = 0
    try:
        for finding in findings:
            yield finding
            processed += 1
            if stop is not None and stop.requested:
                yield ScanIncomplete(stop.reason or "interrupted", processed)
                return
    except KeyboardInterrupt:
        yield ScanIncomplete("interrupted", processed)
        return
    except GitError:
        # git exits non-zero when the same signal reaches it
        if stop is None or not stop.requested:
            raise
        yield ScanIncomplete(stop.reason or "interrupted", processed)
        return
    if stop is not None and stop.requested:
        yield ScanIncomplete(stop.reason or "interrupted", processed)


@dataclass
class AuditSummary:
    total: int = 0
    matched: int = 0
    mismatched: int = 0
    unresolved: int = 0
    authors: dict[str, int] = field(default_factory=dict)
    offenders: dict[str, int] = field(default_factory=dict)
    offender_identities: dict[str, str] = field(default_factory=dict)
    complete: bool = True
    incomplete_reason: Optional[str] = None

    def to_record(self) -> dict:
        return {
            "type": "summary",
            "total": self.total,
            "matched": self.matched,
            "mismatched": self.mismatched,
            "unresolved": self.unresolved,
            "authors": dict(self.authors),
            "offenders": dict(self.offenders),
            "offender_identities": dict(self.offender_identities),
            "complete": self.complete,
            "incomplete_reason": self.incomplete_reason,
        }


def summarize(
    items: Iterable[AuditItem],
    known_emails: Optional[Mapping[str, str]] = None,
) -> AuditSummary:
    """
    Reduce findings to totals.

    ``authors`` counts every author address seen, matched or not.
    ``known_emails`` maps a lower-cased email to an identity id so offending
    addresses that belong to another configured identity can be named.
    """
    known = {email.lower(): identity for email, identity in (known_emails or {}).items()}
    summary = AuditSummary()
    for item in items:
        if isinstance(item, ScanIncomplete):
            summary.complete = False
            summary.incomplete_reason = item.reason
            continue
        summary.total += 1
        author = item.actual_author_email.lower()
        summary.authors[author] = summary.authors.get(author, 0) + 1
        match item.classification:
            case Classification.MATCHED:
                summary.matched += 1
            case Classification.MISMATCHED:
                summary.mismatched += 1
                summary.offenders[author] = summary.offenders.get(author, 0) + 1
                if author in known:
                    summary.offender_identities[author] = known[author]
            case Classification.UNRESOLVED:
                summary.unresolved += 1
    return summary


@dataclass
class RepositoryAudit:
    path: Path
    expected: Optional[str] = None
    summary: Optional[AuditSummary] = None
    error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.error is not None


def audit_repository(
    repo: GitRepository,
    resolver: Resolver,
    *,
    limit: Optional[int] = None,
    stop: Optional[StopSignal] = None,
) -> tuple[Optional[Resolution], Iterator[AuditItem]]:
    """Resolve the expectation for ``repo`` and return its lazy finding stream."""
    resolution = resolver.try_resolve(context_for_repository(repo))
    scanner = AuditScanner(resolution)
    return resolution, interruptible(scanner.scan(repo.iter_commits(max_count=limit)), stop)


def discover_repositories(root: Path, max_depth: int = DEFAULT_DISCOVERY_DEPTH) -> list[Path]:
    """Working trees at or below ``root``, not descending into a found repository."""
    root = Path(root).expanduser().resolve()
    found: list[Path] = []
    if not root.is_dir():
        return found
    for dirpath, dirnames, _ in os.walk(root):
        current = Path(dirpath)
        if (current / ".git").exists():
            found.append(current)
            dirnames[:] = []
            continue
        depth = len(current.relative_to(root).parts)
        if depth >= max_depth:
            dirnames[:] = []
            continue
        dirnames[:] = sorted(
            name for name in dirnames if not name.startswith(".") and name not in _SKIP_DIRS
        )
    return found


def audit_repositories(
    paths: Iterable[Path],
    resolver: Resolver,
    *,
    limit: Optional[int] = None,
    stop: Optional[StopSignal] = None,
    known_emails: Optional[Mapping[str, str]] = None,
) -> Iterator[RepositoryAudit]:
    for path in paths:
        if stop is not None and stop.requested:
            return
        try:
            repo = GitRepository.discover(path, search_parents=False)
            resolution, items = audit_repository(repo, resolver, limit=limit, stop=stop)
            summary = summarize(items, known_emails)
        except GitError as exc:
            logger.warning("Skipping %s: %s", path, exc)
            yield RepositoryAudit(path=path, error=str(exc))
            continue
        yield RepositoryAudit(
            path=path,
            expected=resolution.identity.id if resolution else None,
            summary=summary,
        )
