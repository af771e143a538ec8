"""Webhook notification for pending decisions."""

import sys
from typing import Dict, Optional

import requests

from symphony.config import DECISION_WEBHOOK_URL, WEBHOOK_TIMEOUT_SECONDS


class DecisionNotifier:
    """POSTs a ``decision_required`` event to a webhook.

    Delivery is best-effort: any failure is printed as a warning and never
    undoes the state change that raised the decision.
    """

    def __init__(self, url: str, timeout: float = WEBHOOK_TIMEOUT_SECONDS,
                 debug: bool = False):
        self.url = url
        self.timeout = timeout
        self.debug = debug

    @classmethod
    def from_config(cls, debug: bool = False) -> Optional["DecisionNotifier"]:
        if not DECISION_WEBHOOK_URL:
            return None
        return cls(DECISION_WEBHOOK_URL, debug=debug)

    def _dbg(self, msg: str):
        if self.debug:
            print(f"[SYMPHONY-NOTIFY] {msg}", file=sys.stderr)

    def notify_decision(self, state_path: str, decision: Dict) -> bool:
        payload = {
            'event': 'decision_required',
            'statePath': state_path,
            'decision': decision,
        }
        self._dbg(f"POST {self.url} for phase {decision.get('phaseId')}")
        try:
            resp = requests.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            print(f"[SYMPHONY-NOTIFY] Warning: could not deliver decision "
                  f"notification: {exc}", file=sys.stderr)
            return False
        return True
