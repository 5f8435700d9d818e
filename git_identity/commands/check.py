from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from ..app import GidApp
from ..enforcement import EnforcementCheck, HookDecision, bypass_requested
from ..journal import EVENT_HOOK_BLOCKED, EVENT_HOOK_BYPASSED
from ..resolver import context_for_repository
from .output import CheckLine

logger = logging.getLogger(__name__)


def run(
    app: GidApp,
    *,
    path: Optional[Path] = None,
    hook: bool = False,
    skip: bool = False,
) -> HookDecision:
    """Decide whether a commit in the current repository may proceed."""
    repo = app.repository(path)
    context = context_for_repository(repo)
    check = EnforcementCheck(app.resolver(), app.settings)
    decision = check.run(
        context,
        repo.configured_email(),
        repo.configured_name(),
        bypass=bypass_requested(skip),
    )
    payload = {
        "repository": str(repo.working_dir),
        "expected": decision.expected.id if decision.expected else None,
        "actual_email": decision.actual_email,
        "hook": hook,
    }
    if decision.bypassed:
        app.journal.append_event(EVENT_HOOK_BYPASSED, payload)
    elif not decision.allowed:
        logger.warning("Commit blocked in %s: %s", repo.working_dir, decision.message)
        app.journal.append_event(EVENT_HOOK_BLOCKED, payload)
    status = "OK" if decision.allowed else "BLOCKED"
    if hook and decision.allowed and not decision.bypassed:
        return decision
    print(CheckLine("Identity check", status, decision.message).render(app.settings.color and sys.stdout.isatty()))
    return decision
