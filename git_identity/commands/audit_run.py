from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..app import GidApp
from ..audit import (
    AuditFinding,
    AuditItem,
    AuditSummary,
    Classification,
    ScanIncomplete,
    StopSignal,
    audit_repositories,
    audit_repository,
    discover_repositories,
    summarize,
)
from ..errors import EXIT_FAILURE, EXIT_OK
from ..journal import EVENT_AUDIT_COMPLETE


def _format_finding(finding: AuditFinding) -> str:
    expected = finding.expected_identity_id or "-"
    return (
        f"{finding.commit_hash[:10]}  {finding.classification.value:<10}  "
        f"{finding.actual_author_email} (expected {expected})  {finding.summary}"
    )


def _echo(items: Iterable[AuditItem], *, json_output: bool, show_all: bool) -> Iterator[AuditItem]:
    for item in items:
        if isinstance(item, ScanIncomplete):
            if json_output:
                print(json.dumps({"type": "incomplete", "reason": item.reason, "processed": item.processed}))
            else:
                print(f"Scan incomplete after {item.processed} commit(s): {item.reason}")
        elif json_output:
            print(json.dumps(item.to_record()), flush=True)
        elif show_all or item.classification is not Classification.MATCHED:
            print(_format_finding(item), flush=True)
        yield item


def _print_summary(summary: AuditSummary) -> None:
    print(
        f"{summary.total} commit(s): {summary.matched} matched, "
        f"{summary.mismatched} mismatched, {summary.unresolved} unresolved"
    )
    if summary.authors:
        print(f"{len(summary.authors)} author(s):")
        for email, count in sorted(summary.authors.items(), key=lambda item: (-item[1], item[0])):
            print(f"  {count:>5}  {email}")
        print("Mismatched:" if summary.offenders else "Mismatched: none")
    for email, count in sorted(summary.offenders.items(), key=lambda item: (-item[1], item[0])):
        known = summary.offender_identities.get(email)
        suffix = f" [{known}]" if known else ""
        print(f"  {count:>5}  {email}{suffix}")
    if not summary.complete:
        print(f"Incomplete: {summary.incomplete_reason}")


def run(
    app: GidApp,
    *,
    path: Optional[Path] = None,
    limit: Optional[int] = None,
    json_output: bool = False,
    recursive: bool = False,
    show_all: bool = False,
) -> int:
    with StopSignal().installed() as stop:
        if recursive:
            return _run_many(app, path or Path.cwd(), limit=limit, json_output=json_output, stop=stop)
        repo = app.repository(path)
        resolution, items = audit_repository(repo, app.resolver(), limit=limit, stop=stop)
        if not json_output:
            print(f"Repository: {repo.working_dir}")
            if resolution is None:
                print("Expected:   none (every commit is unresolved)")
            else:
                print(f"Expected:   {resolution.identity.label()} via {resolution.describe()}")
        summary = summarize(_echo(items, json_output=json_output, show_all=show_all), app.known_emails())
    _record(app, repo.working_dir, summary)
    if json_output:
        print(json.dumps(summary.to_record()))
    else:
        _print_summary(summary)
    return EXIT_OK if summary.complete else EXIT_FAILURE


def _record(app: GidApp, path: Path, summary: AuditSummary) -> None:
    payload = {"repository": str(path)}
    payload.update(summary.to_record())
    payload.pop("type", None)
    app.journal.append_event(EVENT_AUDIT_COMPLETE, payload)


def _run_many(
    app: GidApp,
    root: Path,
    *,
    limit: Optional[int],
    json_output: bool,
    stop: StopSignal,
) -> int:
    paths = discover_repositories(root)
    if not paths:
        print(f"No git repositories found under {root}")
        return EXIT_OK
    complete = True
    for result in audit_repositories(
        paths, app.resolver(), limit=limit, stop=stop, known_emails=app.known_emails()
    ):
        if json_output:
            record = {"type": "repository", "path": str(result.path), "expected": result.expected}
            if result.skipped:
                record["error"] = result.error
            else:
                record["summary"] = result.summary.to_record()
            print(json.dumps(record), flush=True)
        elif result.skipped:
            print(f"{result.path}: skipped ({result.error})")
        else:
            print(f"{result.path}: expected {result.expected or '-'}")
            _print_summary(result.summary)
        if result.summary is not None:
            complete = complete and result.summary.complete
            _record(app, result.path, result.summary)
    if stop.requested:
        complete = False
    return EXIT_OK if complete else EXIT_FAILURE
