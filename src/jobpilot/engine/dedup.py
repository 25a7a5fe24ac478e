"""Duplicate suppression for one dispatch pass.

Follow-up reminder rules consult the data gateway: a target is handled while
a live reminder of the same type exists for the job. Other kinds have no
persisted per-target marker, so the guard only remembers what this pass
already did; their effects are idempotent (or tolerated) across passes.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Set, Tuple

from ..contracts.v1 import FollowUpReminderRule
from ..kernel.store import DataGateway
from .triggers import Target

_Key = Tuple[str, str, str, str]


class DedupGuard:
    def __init__(self, gateway: DataGateway, *, call_gateway: Callable[..., Any]) -> None:
        self._gateway = gateway
        self._call_gateway = call_gateway
        self._lock = threading.Lock()
        self._claimed: Set[_Key] = set()

    @staticmethod
    def _key(rule: Any, target: Target) -> _Key:
        # Same user + kind + job + action config is the same logical action,
        # even when it comes from two different rules.
        return (rule.user_id, rule.rule_type, target.job_id, rule.action_config.model_dump_json())

    def already_handled(self, rule: Any, target: Target) -> bool:
        if isinstance(rule, FollowUpReminderRule):
            live = self._call_gateway(
                self._gateway.find_live_reminder, rule.user_id, target.job_id, str(target.reminder_type)
            )
            return live is not None
        with self._lock:
            return self._key(rule, target) in self._claimed

    def claim(self, rule: Any, target: Target) -> bool:
        """Check and record in one step. False means skip this target."""
        if isinstance(rule, FollowUpReminderRule):
            return not self.already_handled(rule, target)
        key = self._key(rule, target)
        with self._lock:
            if key in self._claimed:
                return False
            self._claimed.add(key)
            return True
