from __future__ import annotations

import json
from typing import Optional

from ..journal import EventJournal


def run(
    journal: EventJournal,
    *,
    limit: int = 50,
    event: Optional[str] = None,
    since: Optional[int] = None,
    json_output: bool = False,
) -> None:
    events = journal.list_events(limit=limit, event=event, since_id=since)
    if not events:
        print("No events recorded.")
        return
    if json_output:
        print(json.dumps(events, indent=2, sort_keys=True))
        return
    for record in events:
        print(f"[{record['id']}] {record['created_at']} {record['event']}")
        payload = record.get("payload") or {}
        if isinstance(payload, dict) and payload:
            for key in sorted(payload):
                print(f"  {key}: {payload[key]}")
