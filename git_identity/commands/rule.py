from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..app import GidApp
from ..config import Rule, RuleKind
from ..errors import ConfigError, GitError
from ..rules import MatchContext, match_all


def add(
    app: GidApp,
    *,
    kind: str,
    pattern: str,
    identity_id: str,
    priority: int = 100,
    description: Optional[str] = None,
    enabled: bool = True,
) -> int:
    try:
        rule = Rule(
            kind=RuleKind(kind),
            pattern=pattern,
            identity=identity_id,
            priority=priority,
            enabled=enabled,
            description=description,
        )
    except (ValueError, ValidationError) as exc:
        raise ConfigError(f"Invalid rule: {exc}") from exc
    with app.configs.update() as store:
        index = store.add_rule(rule)
    app.reload()
    print(f"Added rule {index}: {rule.label()} (priority {rule.priority})")
    return index


def list_rules(app: GidApp) -> None:
    rules = app.store.rules
    if not rules:
        print("No rules configured. Add one with `gid rule add`.")
        return
    dangling = {index for index, _ in app.store.dangling_rules()}
    for index, rule in app.store.rule_set().canonical():
        flags = []
        if not rule.enabled:
            flags.append("disabled")
        if index in dangling:
            flags.append("dangling")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"{index:>3}  {rule.priority:>4}  {rule.label()}{suffix}")
        if rule.description:
            print(f"           {rule.description}")


def remove(app: GidApp, index: int) -> Rule:
    with app.configs.update() as store:
        removed = store.remove_rule(index)
    app.reload()
    print(f"Removed rule {index}: {removed.label()}")
    return removed


def test(app: GidApp, *, path: Optional[Path] = None, remote: Optional[str] = None) -> bool:
    """Show which rules match a path and/or remote; True when at least one does."""
    if path is None and remote is None:
        try:
            repo = app.repository()
        except GitError:
            path = Path.cwd()
        else:
            path = repo.working_dir
            remote = repo.origin_url()
    context = MatchContext(path=path, remote_url=remote)
    matches = match_all(app.resolver().compiled, context)
    print(f"Path:   {path if path is not None else '-'}")
    print(f"Remote: {remote or '-'}")
    if not matches:
        print("No rule matches.")
        return False
    for position, compiled in enumerate(matches):
        marker = "->" if position == 0 else "  "
        print(f"{marker} rule {compiled.index}: {compiled.rule.label()} (priority {compiled.rule.priority})")
    return True
