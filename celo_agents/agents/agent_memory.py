"""
Bounded Rolling Agent Memory

Per-agent history used to improve future decisions:
- Observations: state snapshots taken at decision time
- Actions: one record per attempted action, rejection or error
- Learnings: short summaries of confident successful actions

Observations and actions keep the most recent 100 entries, learnings the
most recent 50; oldest entries are dropped first.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..infrastructure.config import MemorySettings
from ..services.features import utcnow

PROPOSED_RESULT = {"proposed": True}


@dataclass
class Observation:
    timestamp: datetime
    type: str
    data: Dict[str, Any]


@dataclass
class ActionRecord:
    timestamp: datetime
    type: str
    params: Dict[str, Any]
    result: Optional[Dict[str, Any]]
    success: bool

    @property
    def is_proposal(self) -> bool:
        return self.result == PROPOSED_RESULT


@dataclass
class AgentMemory:
    agent_id: Any
    observations: List[Observation] = field(default_factory=list)
    actions: List[ActionRecord] = field(default_factory=list)
    learnings: List[str] = field(default_factory=list)
    last_run: datetime = field(default_factory=utcnow)

    # Per-trigger fire times (schedule/event triggers) and per-rule selection
    # times (tie-break); written only by the owning execution cycle
    trigger_last_fired: Dict[str, datetime] = field(default_factory=dict)
    rule_last_selected: Dict[str, datetime] = field(default_factory=dict)

    def record_observation(self, data: Dict[str, Any], type: str = "state", now: datetime = None):
        self.observations.append(Observation(timestamp=now or utcnow(), type=type, data=data))

    def record_action(
        self,
        type: str,
        params: Dict[str, Any],
        result: Optional[Dict[str, Any]],
        success: bool,
        now: datetime = None,
    ):
        self.actions.append(ActionRecord(
            timestamp=now or utcnow(), type=type, params=dict(params or {}), result=result, success=success,
        ))

    def add_learning(self, learning: str):
        self.learnings.append(learning)

    def trim(self, settings: MemorySettings):
        """FIFO eviction down to the configured caps"""
        if len(self.observations) > settings.max_observations:
            self.observations = self.observations[-settings.max_observations:]
        if len(self.actions) > settings.max_actions:
            self.actions = self.actions[-settings.max_actions:]
        if len(self.learnings) > settings.max_learnings:
            self.learnings = self.learnings[-settings.max_learnings:]

    def get_stats(self) -> Dict[str, Any]:
        successes = sum(1 for a in self.actions if a.success)
        return {
            "agent_id": str(self.agent_id),
            "observations": len(self.observations),
            "actions": len(self.actions),
            "successful_actions": successes,
            "success_rate": round(successes / len(self.actions), 2) if self.actions else 0,
            "learnings": len(self.learnings),
            "last_run": self.last_run.isoformat(),
        }
