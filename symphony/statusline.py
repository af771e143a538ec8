"""One-line progress display for a status bar.

Reads the document for display only. A missing, unreadable or malformed
document renders as nothing; this must never fail the caller.
"""

import json
from typing import Any, Dict, Optional

FILLED = '█'
EMPTY = '░'
BAR_WIDTH = 10
MAX_RUNNING_CHARS = 30

TERMINAL_LABELS = {
    'completed': '[Done]',
    'failed': '[Failed]',
    'aborted': '[Aborted]',
}


def _load(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get('phases'), dict):
        return None
    return data


def render_statusline(path: str) -> Optional[str]:
    data = _load(path)
    if data is None:
        return None

    phases: Dict[str, Any] = data['phases']
    plan = data.get('plan')
    plan_phases = plan.get('phases') if isinstance(plan, dict) else None
    total = len(plan_phases) if isinstance(plan_phases, list) else len(phases)
    if total == 0:
        return None

    statuses = [p.get('status') for p in phases.values()
                if isinstance(p, dict)]
    completed = statuses.count('complete')
    failed = statuses.count('failed')

    status = data.get('status')
    if not isinstance(status, str):
        return None

    label = TERMINAL_LABELS.get(status)
    if label:
        return f"{label} {completed}/{total}"

    filled = min(BAR_WIDTH, int(completed * BAR_WIDTH / total + 0.5))
    line = f"[{FILLED * filled}{EMPTY * (BAR_WIDTH - filled)}] " \
           f"{completed}/{total}"
    if failed:
        line += f" ({failed}!)"

    if status == 'awaiting_user_decision':
        decisions = data.get('pendingDecisions') or []
        if not isinstance(decisions, list):
            return None
        waiting = [d['phaseId'] for d in decisions if isinstance(d, dict)
                   and isinstance(d.get('phaseId'), str)]
        return f"{line} | [Waiting] {', '.join(waiting)}".rstrip()

    running = [pid for pid, p in phases.items()
               if isinstance(p, dict) and p.get('status') == 'running']
    if running:
        names = ', '.join(running)
        if len(names) > MAX_RUNNING_CHARS:
            names = names[:MAX_RUNNING_CHARS - 3] + '...'
        line += f" | {names}"
    return line
