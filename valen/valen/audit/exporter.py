from __future__ import annotations

import json
from pathlib import Path

import requests


def export_ledger(
    ledger_path: str | Path,
    endpoint: str,
    decisions: set[str] | None = None,
    timeout: int = 5,
) -> int:
    """POST ledger events to a collector endpoint; returns how many were sent.

    `decisions` restricts the export to e.g. {"DENY", "INVALID"}.
    """
    path = Path(ledger_path)
    if not path.exists():
        return 0

    sent = 0
    with requests.Session() as session:
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            if decisions and event.get("decision") not in decisions:
                continue
            response = session.post(endpoint, json={"source": "valen", "event": event}, timeout=timeout)
            response.raise_for_status()
            sent += 1
    return sent
