"""
Decision Engine - evaluate triggers, score rules, emit one decision per cycle

Flow:
1. Evaluate enabled triggers (descending priority) against state + memory
2. Candidate rules = enabled rules bound to a fired trigger
3. Score each candidate: weighted partial match over its conditions
4. Select best (score, then priority, then least recently selected)
5. Instantiate the winner's first applicable action template

One broken trigger or rule never aborts the pass: its error is tracked and
it simply cannot fire / win.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..infrastructure.config import ZERO_ADDRESS, DecisionSettings, get_config
from ..infrastructure.errors import (
    CatalogError,
    ErrorTracker,
    RuleEvaluationError,
    TriggerEvaluationError,
)
from .decision_rules import ActionTemplate, ActionType, Decision, DecisionRule
from .features import (
    as_datetime,
    calculate_risk_score,
    compare_values,
    extract_features,
    get_metric_value,
    match_strength,
    utcnow,
)
from .scoring_models import ScoringModel
from .triggers import (
    EventConfig,
    MLPredictionConfig,
    PatternConfig,
    ScheduleConfig,
    ScheduleInterval,
    ThresholdConfig,
    Trigger,
)

if TYPE_CHECKING:
    from ..agents.agent_memory import AgentMemory

logger = logging.getLogger("DecisionEngine")

AUTO_HINTS = {"auto", "optimal"}
TOKEN_HINTS = {"auto", "selected"}
ALL_HINT = "all"
EMERGENCY_WALLET_HINT = "emergency_wallet"
SELECTABLE_TOKENS = {"cUSD": "cusd_balance", "cEUR": "ceur_balance", "CELO": "celo_balance"}

ScoredRule = Tuple[DecisionRule, float]


class DecisionEngine:
    """
    Rule-based decision engine over process-wide trigger, rule and model catalogs.

    Catalogs are read once per decision pass; administrative mutations are
    visible to the next pass.
    """

    def __init__(self, settings: Optional[DecisionSettings] = None, error_tracker: Optional[ErrorTracker] = None):
        self.settings = settings or get_config().decision
        self.error_tracker = error_tracker or ErrorTracker()

        self.triggers: Dict[str, Trigger] = {}
        self.rules: Dict[str, DecisionRule] = {}
        self.ml_models: Dict[str, ScoringModel] = {}

    # ==========================================
    # CATALOG ADMINISTRATION
    # ==========================================

    def add_trigger(self, trigger: Trigger):
        self.triggers[trigger.id] = trigger
        logger.info(f"Trigger registered: {trigger.id} ({trigger.type.value})")

    def add_rule(self, rule: DecisionRule):
        if rule.trigger_id not in self.triggers:
            raise CatalogError(f"Rule '{rule.id}' references unknown trigger '{rule.trigger_id}'", rule.id)
        self.rules[rule.id] = rule
        logger.info(f"Rule registered: {rule.id} -> trigger {rule.trigger_id}")

    def add_ml_model(self, model: ScoringModel):
        self.ml_models[model.id] = model
        logger.info(f"Scoring model registered: {model.id} ({model.kind.value})")

    def remove_trigger(self, trigger_id: str):
        bound = [r.id for r in self.rules.values() if r.trigger_id == trigger_id]
        if bound:
            raise CatalogError(f"Trigger '{trigger_id}' still bound to rules {bound}", trigger_id)
        self.triggers.pop(trigger_id, None)

    def remove_rule(self, rule_id: str):
        self.rules.pop(rule_id, None)

    def get_triggers(self) -> List[Trigger]:
        return list(self.triggers.values())

    def get_rules(self) -> List[DecisionRule]:
        return list(self.rules.values())

    def get_ml_models(self) -> List[ScoringModel]:
        return list(self.ml_models.values())

    # ==========================================
    # TRIGGER EVALUATION
    # ==========================================

    def evaluate_triggers(
        self,
        agent_id: Any,
        current_state: Dict[str, Any],
        memory: "AgentMemory",
        now: Optional[datetime] = None,
    ) -> List[Trigger]:
        """
        Return the triggers that fire this cycle, highest priority first.
        Pure with respect to state and memory: repeated calls agree.
        """
        now = now or utcnow()
        ordered = sorted(
            (t for t in list(self.triggers.values()) if t.enabled),
            key=lambda t: (-t.priority, t.id),
        )

        fired = []
        for trigger in ordered:
            try:
                if self.evaluate_trigger(trigger, current_state, memory, now):
                    fired.append(trigger)
            except Exception as e:
                error = e if isinstance(e, TriggerEvaluationError) else TriggerEvaluationError(trigger.id, str(e))
                self.error_tracker.track(error, source=f"trigger:{trigger.id}")
                logger.debug(f"[{agent_id}] Trigger {trigger.id} skipped: {e}")

        return fired

    def evaluate_trigger(self, trigger: Trigger, state: Dict[str, Any], memory: "AgentMemory", now: datetime) -> bool:
        config = trigger.config
        if isinstance(config, ThresholdConfig):
            return self._evaluate_threshold(trigger, config, state)
        if isinstance(config, ScheduleConfig):
            return self._evaluate_schedule(trigger, config, memory, now)
        if isinstance(config, EventConfig):
            return self._evaluate_event(trigger, config, state, memory)
        if isinstance(config, PatternConfig):
            return self._evaluate_pattern(trigger, config, memory, now)
        if isinstance(config, MLPredictionConfig):
            return self._evaluate_ml(trigger, config, state, memory)
        raise TriggerEvaluationError(trigger.id, f"Unsupported trigger config {type(config).__name__}")

    def _evaluate_threshold(self, trigger: Trigger, config: ThresholdConfig, state: Dict[str, Any]) -> bool:
        value = get_metric_value(state, config.metric, config.token)
        return compare_values(value, config.operator, config.value)

    def _evaluate_schedule(self, trigger: Trigger, config: ScheduleConfig, memory: "AgentMemory", now: datetime) -> bool:
        # Tracked per trigger, not per agent run
        last_fired = memory.trigger_last_fired.get(trigger.id)
        if last_fired is not None:
            last_fired = as_datetime(last_fired)

        if not config.time:
            return last_fired is None or (now - last_fired).total_seconds() >= config.interval.seconds

        tz = ZoneInfo(config.timezone or "UTC")
        hour, minute = (int(p) for p in config.time.split(":"))
        local = now.astimezone(tz)
        if (local.hour, local.minute) < (hour, minute):
            return False
        if last_fired is None:
            return True

        # Interval measured from the slot of the last fire, not the fire itself
        last_slot = schedule_slot(last_fired.astimezone(tz), hour, minute, config.interval)
        return (now - last_slot).total_seconds() >= config.interval.seconds

    def _evaluate_event(self, trigger: Trigger, config: EventConfig, state: Dict[str, Any], memory: "AgentMemory") -> bool:
        events = state.get("recent_events")
        if events is None and memory.observations:
            events = memory.observations[-1].data.get("recent_events", [])

        last_fired = memory.trigger_last_fired.get(trigger.id)
        for event in events or []:
            if str(event.get("address", "")).lower() != config.contract_address.lower():
                continue
            if event.get("name") != config.event_name:
                continue
            args = event.get("args") or {}
            if not all(same_value(args.get(k), v) for k, v in config.filter.items()):
                continue
            if last_fired is not None and event.get("timestamp") is not None:
                if as_datetime(event["timestamp"]) <= as_datetime(last_fired):
                    continue
            return True
        return False

    def _evaluate_pattern(self, trigger: Trigger, config: PatternConfig, memory: "AgentMemory", now: datetime) -> bool:
        if not config.sequence:
            raise TriggerEvaluationError(trigger.id, "Pattern trigger has an empty sequence")

        cutoff = now - timedelta(seconds=config.timeframe_seconds)
        stream = [(as_datetime(a.timestamp), a.type) for a in memory.actions]
        for observation in memory.observations:
            for event in observation.data.get("recent_events", []) or []:
                stamp = event.get("timestamp", observation.timestamp)
                stream.append((as_datetime(stamp), event.get("name")))

        recent = [name for stamp, name in sorted(stream, key=lambda s: s[0]) if stamp >= cutoff]
        return sequence_confidence(recent, config.sequence) >= config.confidence

    def _evaluate_ml(self, trigger: Trigger, config: MLPredictionConfig, state: Dict[str, Any], memory: "AgentMemory") -> bool:
        model = self.ml_models.get(config.model)
        if model is None:
            raise TriggerEvaluationError(trigger.id, f"Unknown scoring model '{config.model}'")
        vector = extract_features(state, memory, config.features)
        return model.score(vector) >= config.threshold

    # ==========================================
    # RULE SELECTION & SCORING
    # ==========================================

    def find_applicable_rules(self, fired: List[Trigger]) -> List[DecisionRule]:
        fired_ids = {t.id for t in fired}
        return [r for r in list(self.rules.values()) if r.enabled and r.trigger_id in fired_ids]

    def evaluate_rule_conditions(self, rule: DecisionRule, state: Dict[str, Any], memory: "AgentMemory") -> float:
        """score = sum(weight * match_strength) / sum(weight), in [0, 1]"""
        total_weight = sum(c.weight for c in rule.conditions)
        if total_weight <= 0:
            return 1.0

        try:
            weighted = sum(
                c.weight * match_strength(get_metric_value(state, c.metric), c.operator, c.value)
                for c in rule.conditions
            )
        except Exception as e:
            raise RuleEvaluationError(rule.id, f"Rule '{rule.id}' could not be scored: {e}") from e

        return weighted / total_weight

    def score_rules(self, rules: List[DecisionRule], state: Dict[str, Any], memory: "AgentMemory") -> List[ScoredRule]:
        scored = []
        for rule in rules:
            try:
                scored.append((rule, self.evaluate_rule_conditions(rule, state, memory)))
            except RuleEvaluationError as e:
                self.error_tracker.track(e, source=f"rule:{rule.id}")
                logger.debug(f"Rule {rule.id} excluded: {e.message}")
        return scored

    def rank_rules(self, scored: List[ScoredRule], memory: Optional["AgentMemory"] = None) -> List[ScoredRule]:
        """
        Best first: higher score, then higher priority, then least recently
        selected for this agent (never selected counts as oldest), then id.
        """
        last_selected = memory.rule_last_selected if memory is not None else {}

        def recency(rule: DecisionRule) -> float:
            stamp = last_selected.get(rule.id)
            return as_datetime(stamp).timestamp() if stamp is not None else float("-inf")

        return sorted(scored, key=lambda rs: (-rs[1], -rs[0].priority, recency(rs[0]), rs[0].id))

    def select_best_rule(self, scored: List[ScoredRule], memory: Optional["AgentMemory"] = None) -> Optional[ScoredRule]:
        ranked = self.rank_rules(scored, memory)
        return ranked[0] if ranked else None

    # ==========================================
    # ACTION INSTANTIATION
    # ==========================================

    def execute_rule(
        self,
        rule: DecisionRule,
        state: Dict[str, Any],
        memory: "AgentMemory",
        goal: str = "",
    ) -> Tuple[str, Dict[str, Any]]:
        """Turn the rule's first applicable template into (action, params)."""
        for template in rule.actions:
            if self._template_applies(template, state):
                return template.type.value, self.resolve_params(template, state, memory, goal)
        raise RuleEvaluationError(rule.id, f"Rule '{rule.id}' has no applicable action template")

    def _template_applies(self, template: ActionTemplate, state: Dict[str, Any]) -> bool:
        try:
            return all(
                compare_values(get_metric_value(state, c.metric), c.operator, c.value)
                for c in template.conditions
            )
        except Exception as e:
            logger.debug(f"Template {template.type.value} not applicable: {e}")
            return False

    def resolve_params(
        self,
        template: ActionTemplate,
        state: Dict[str, Any],
        memory: "AgentMemory",
        goal: str = "",
    ) -> Dict[str, Any]:
        """Resolve synthesis hints against current state and risk."""
        params = template.instantiate()
        action = template.type
        risk = calculate_risk_score(state, memory)

        if str(params.get("token", "")).lower() in TOKEN_HINTS:
            params["token"] = select_optimal_token(state, goal)

        token = params.get("token") or params.get("tokenIn")
        for key in ("amount", "amountIn"):
            hint = params.get(key)
            if isinstance(hint, str) and hint.lower() in AUTO_HINTS:
                params[key] = self.calculate_optimal_amount(state, action, risk, token)
            elif hint == ALL_HINT:
                params[key] = available_balance(state, token)

        price = _to_float(state.get("price"), default=1.0)
        if str(params.get("amountOut", "")).lower() in AUTO_HINTS:
            amount_in = _to_float(params.get("amountIn"), default=None)
            if amount_in is None:
                amount_in = self.calculate_optimal_amount(state, action, risk, token)
            params["amountOut"] = round(amount_in * price, 6)
        if str(params.get("maxPrice", "")).lower() in AUTO_HINTS:
            params["maxPrice"] = round(price * (1 + self.settings.price_slippage), 6)
        if str(params.get("minPrice", "")).lower() in AUTO_HINTS:
            params["minPrice"] = round(price * (1 - self.settings.price_slippage), 6)

        if params.get("to") == EMERGENCY_WALLET_HINT:
            params["to"] = self.settings.emergency_wallet
        elif action is ActionType.TRANSFER and not params.get("to") and risk >= self.settings.high_risk_threshold:
            logger.warning(f"Risk {risk:.0f} >= {self.settings.high_risk_threshold:.0f}: routing transfer to emergency wallet")
            params["to"] = self.settings.emergency_wallet
        if params.get("to") == ZERO_ADDRESS:
            logger.warning("⚠️ No emergency wallet configured; transfer will fail validation")

        # Numeric literals arrive as strings from JSON-defined templates
        for key in ("amount", "amountIn", "amountOut", "maxPrice", "minPrice", "shares"):
            if isinstance(params.get(key), str):
                params[key] = _to_float(params[key], default=params[key])

        return params

    def calculate_optimal_amount(self, state: Dict[str, Any], action: ActionType, risk: float, token: str = None) -> float:
        balance = available_balance(state, token)
        if action is ActionType.STAKE:
            base = min(balance * 0.8, 1000)
        elif action is ActionType.TRANSFER:
            base = min(balance * 0.1, 100)
        else:
            base = 100.0
        return round(base * (1 - risk / 200), 6)

    # ==========================================
    # DECISION
    # ==========================================

    def generate_decision(
        self,
        agent_id: Any,
        current_state: Dict[str, Any],
        memory: "AgentMemory",
        goal: str = "",
        now: Optional[datetime] = None,
    ) -> Decision:
        fired = self.evaluate_triggers(agent_id, current_state, memory, now)
        if not fired:
            return Decision.none("no triggers fired")

        fired_ids = [t.id for t in fired]
        candidates = self.find_applicable_rules(fired)
        scored = self.score_rules(candidates, current_state, memory)
        viable = [rs for rs in scored if rs[1] >= self.settings.min_rule_score]

        for rule, score in self.rank_rules(viable, memory):
            try:
                action, params = self.execute_rule(rule, current_state, memory, goal)
            except RuleEvaluationError as e:
                self.error_tracker.track(e, source=f"rule:{rule.id}")
                continue

            trigger_names = ", ".join(t.name for t in fired if t.id == rule.trigger_id)
            logger.info(f"[{agent_id}] 🎯 Rule {rule.id} selected (score {score:.2f}) -> {action}")
            return Decision(
                action=action,
                params=params,
                reasoning=f"Executed rule: {rule.name} (score {score:.2f}) based on triggers: {trigger_names}",
                confidence=min(1.0, max(0.0, score)),
                triggered_by=fired_ids,
                rule_id=rule.id,
            )

        return Decision.none("no rule met threshold", fired_ids)


# ==========================================
# HELPERS
# ==========================================

def schedule_slot(moment: datetime, hour: int, minute: int, interval: ScheduleInterval) -> datetime:
    """Most recent HH:MM slot at or before `moment` (minute-of-hour for hourly schedules)."""
    if interval is ScheduleInterval.HOURLY:
        slot = moment.replace(minute=minute, second=0, microsecond=0)
        return slot - timedelta(hours=1) if slot > moment else slot
    slot = moment.replace(hour=hour, minute=minute, second=0, microsecond=0)
    return slot - timedelta(days=1) if slot > moment else slot


def same_value(actual: Any, expected: Any) -> bool:
    """Equality; strings (addresses, symbols) compare case-insensitively."""
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.lower() == expected.lower()
    return actual == expected


def sequence_confidence(observed: List[str], sequence: List[str]) -> float:
    """Fraction of `sequence` found, in order, as a subsequence of `observed`."""
    matched = 0
    for name in observed:
        if matched < len(sequence) and name == sequence[matched]:
            matched += 1
    return matched / len(sequence)


def resolve_token_symbol(state: Dict[str, Any], token: str) -> Optional[str]:
    """Symbol (any case) or address to the observed symbol; None when unknown."""
    value = str(token).lower()
    for symbol in list(SELECTABLE_TOKENS) + list(state.get("token_balances") or {}):
        if str(symbol).lower() == value:
            return symbol
    for symbol, address in (state.get("token_addresses") or {}).items():
        if str(address).lower() == value:
            return symbol
    return None


def available_balance(state: Dict[str, Any], token: Optional[str] = None) -> float:
    """Locally observed balance for a token symbol/address; cUSD when unspecified, 0 when unknown."""
    symbol = resolve_token_symbol(state, token) if token else "cUSD"
    if symbol is None:
        return 0.0
    if symbol in SELECTABLE_TOKENS and state.get(SELECTABLE_TOKENS[symbol]) is not None:
        return _to_float(state[SELECTABLE_TOKENS[symbol]], default=0.0)
    return _to_float((state.get("token_balances") or {}).get(symbol), default=0.0)


def select_optimal_token(state: Dict[str, Any], goal: str = "") -> str:
    """Token named in the goal, else the largest of cUSD / cEUR / CELO."""
    for symbol in SELECTABLE_TOKENS:
        if goal and re.search(rf"\b{re.escape(symbol)}\b", goal, re.IGNORECASE):
            return symbol
    return max(SELECTABLE_TOKENS, key=lambda s: _to_float(state.get(SELECTABLE_TOKENS[s]), default=0.0))


def _to_float(value: Any, default: Any = 0.0) -> Any:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
