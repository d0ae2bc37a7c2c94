"""
Decision Engine Tests
Rule scoring, selection, tie-breaks, parameter synthesis and the default catalog

Run: python -m pytest tests/test_decision_engine.py -v
"""

import pytest
from datetime import datetime, timedelta, timezone

from celo_agents.agents.action_validator import validate_action
from celo_agents.infrastructure.config import DecisionSettings, ZERO_ADDRESS
from celo_agents.infrastructure.errors import CatalogError
from celo_agents.services.decision_engine import DecisionEngine
from celo_agents.services.decision_rules import (
    NO_ACTION,
    ActionTemplate,
    ActionType,
    DecisionCondition,
    DecisionRule,
)
from celo_agents.services.default_catalog import default_rules, default_triggers, load_default_catalog
from celo_agents.services.triggers import Operator, ThresholdConfig, Trigger

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
RECIPIENT = "0x5E047DeB5eb22F4E4A7f2207087369468575e3EF"


def transfer_rule(rule_id, trigger_id, conditions, priority=0, amount=10):
    return DecisionRule(
        id=rule_id,
        name=rule_id.replace("_", " ").title(),
        trigger_id=trigger_id,
        conditions=conditions,
        actions=[ActionTemplate(ActionType.TRANSFER, {"to": RECIPIENT, "amount": amount, "token": "cUSD"})],
        priority=priority,
    )


@pytest.fixture
def low_balance_engine(decision_engine):
    decision_engine.add_trigger(Trigger("low", "Low Balance", ThresholdConfig("balance", Operator.LT, 1000)))
    return decision_engine


# =============================================================================
# TEST: Rule scoring & selection
# =============================================================================

class TestRuleSelection:
    """Weighted partial-match scoring and best-rule selection"""

    def test_scenario_b_best_score_wins(self, low_balance_engine, memory):
        """Rules scoring 0.8 and 0.6 on the same trigger: the 0.8 rule wins"""
        high = transfer_rule("high", "low", [
            DecisionCondition("balance", Operator.LT, 1000, weight=0.8),
            DecisionCondition("gas_price", Operator.GT, 100, weight=0.2),
        ])
        low = transfer_rule("low_rule", "low", [
            DecisionCondition("balance", Operator.LT, 1000, weight=0.6),
            DecisionCondition("gas_price", Operator.GT, 100, weight=0.4),
        ], priority=10)
        low_balance_engine.add_rule(high)
        low_balance_engine.add_rule(low)

        state = {"cusd_balance": 500, "gas_price": 0}
        scored = low_balance_engine.score_rules([high, low], state, memory)

        assert dict((r.id, s) for r, s in scored) == {"high": pytest.approx(0.8), "low_rule": pytest.approx(0.6)}
        best, score = low_balance_engine.select_best_rule(scored, memory)
        assert best is high
        assert score == pytest.approx(0.8)

        decision = low_balance_engine.generate_decision(1, state, memory)
        assert decision.rule_id == "high"
        assert decision.confidence == pytest.approx(0.8)

    def test_partial_credit_for_near_miss(self, low_balance_engine, memory):
        rule = transfer_rule("near", "low", [DecisionCondition("balance", Operator.LT, 400)])
        score = low_balance_engine.evaluate_rule_conditions(rule, {"cusd_balance": 500}, memory)
        assert score == pytest.approx(0.75)

    def test_selection_invariant(self, low_balance_engine, memory):
        """A perfect rule bound to an unfired trigger is never selected"""
        low_balance_engine.add_trigger(Trigger("gas", "Gas", ThresholdConfig("gas_price", Operator.GT, 50)))
        low_balance_engine.add_rule(transfer_rule("gas_rule", "gas", [], priority=99))
        low_balance_engine.add_rule(transfer_rule("low_rule", "low", [DecisionCondition("balance", Operator.LT, 1000)]))

        decision = low_balance_engine.generate_decision(1, {"cusd_balance": 500, "gas_price": 10}, memory)

        assert decision.rule_id == "low_rule"
        assert decision.triggered_by == ["low"]
        assert low_balance_engine.rules[decision.rule_id].trigger_id in decision.triggered_by

    def test_broken_rule_excluded(self, low_balance_engine, memory):
        """A rule on a missing metric is skipped; the others still compete"""
        low_balance_engine.add_rule(transfer_rule("broken", "low", [DecisionCondition("apy", Operator.GT, 1)], priority=9))
        low_balance_engine.add_rule(transfer_rule("healthy", "low", [DecisionCondition("balance", Operator.LT, 1000)]))

        decision = low_balance_engine.generate_decision(1, {"cusd_balance": 500}, memory)

        assert decision.rule_id == "healthy"
        assert low_balance_engine.error_tracker.error_counts["RuleEvaluationError"] == 1

    def test_disabled_rule_not_candidate(self, low_balance_engine, memory):
        rule = transfer_rule("off", "low", [])
        rule.enabled = False
        low_balance_engine.add_rule(rule)

        decision = low_balance_engine.generate_decision(1, {"cusd_balance": 500}, memory)
        assert decision.action == NO_ACTION
        assert decision.reasoning == "no rule met threshold"


# =============================================================================
# TEST: Tie-breaks
# =============================================================================

class TestTieBreak:
    """Score, then priority, then least recently selected, then id"""

    def test_priority_breaks_score_tie(self, low_balance_engine, memory):
        a = transfer_rule("a", "low", [], priority=1)
        b = transfer_rule("b", "low", [], priority=5)
        best, _ = low_balance_engine.select_best_rule([(a, 1.0), (b, 1.0)], memory)
        assert best is b

    def test_least_recently_selected_wins(self, low_balance_engine, memory):
        a = transfer_rule("a", "low", [])
        b = transfer_rule("b", "low", [])
        memory.rule_last_selected["a"] = NOW - timedelta(hours=1)
        memory.rule_last_selected["b"] = NOW - timedelta(hours=5)

        best, _ = low_balance_engine.select_best_rule([(a, 1.0), (b, 1.0)], memory)
        assert best is b

    def test_never_selected_counts_as_oldest(self, low_balance_engine, memory):
        a = transfer_rule("a", "low", [])
        b = transfer_rule("b", "low", [])
        memory.rule_last_selected["a"] = NOW - timedelta(days=30)

        best, _ = low_balance_engine.select_best_rule([(a, 1.0), (b, 1.0)], memory)
        assert best is b

    def test_id_is_final_tie_break(self, low_balance_engine):
        a = transfer_rule("a", "low", [])
        b = transfer_rule("b", "low", [])
        best, _ = low_balance_engine.select_best_rule([(b, 1.0), (a, 1.0)])
        assert best is a

    def test_empty_candidates(self, low_balance_engine):
        assert low_balance_engine.select_best_rule([]) is None


# =============================================================================
# TEST: Decisions
# =============================================================================

class TestGenerateDecision:

    def test_no_triggers_fired(self, low_balance_engine, memory):
        decision = low_balance_engine.generate_decision(1, {"cusd_balance": 5000}, memory)

        assert decision.action == NO_ACTION
        assert decision.confidence == 0.0
        assert decision.reasoning == "no triggers fired"
        assert decision.triggered_by == []

    def test_below_minimum_score(self, low_balance_engine, memory):
        low_balance_engine.add_rule(transfer_rule("weak", "low", [DecisionCondition("balance", Operator.LT, 100)]))

        decision = low_balance_engine.generate_decision(1, {"cusd_balance": 500}, memory)

        assert decision.action == NO_ACTION
        assert decision.confidence == 0.0
        assert decision.reasoning == "no rule met threshold"
        assert decision.triggered_by == ["low"]

    def test_reasoning_names_rule_and_trigger(self, low_balance_engine, memory):
        low_balance_engine.add_rule(transfer_rule("top_up", "low", [DecisionCondition("balance", Operator.LT, 1000)]))

        decision = low_balance_engine.generate_decision(1, {"cusd_balance": 500}, memory)

        assert decision.action == "transfer"
        assert decision.params == {"to": RECIPIENT, "amount": 10.0, "token": "cUSD"}
        assert "Top Up" in decision.reasoning
        assert "Low Balance" in decision.reasoning

    def test_first_applicable_template(self, low_balance_engine, memory):
        rule = DecisionRule(
            id="tiered", name="Tiered", trigger_id="low", conditions=[],
            actions=[
                ActionTemplate(ActionType.STAKE, {"protocol": "moola", "amount": 100},
                               conditions=[DecisionCondition("balance", Operator.GT, 1000)]),
                ActionTemplate(ActionType.TRANSFER, {"to": RECIPIENT, "amount": 5}),
            ],
        )
        low_balance_engine.add_rule(rule)

        decision = low_balance_engine.generate_decision(1, {"cusd_balance": 500}, memory)
        assert decision.action == "transfer"

    def test_template_not_mutated(self, low_balance_engine, memory, sample_state):
        rule = DecisionRule(
            id="stake_auto", name="Stake", trigger_id="low", conditions=[],
            actions=[ActionTemplate(ActionType.STAKE, {"protocol": "moola", "token": "cUSD", "amount": "auto"})],
        )
        low_balance_engine.add_rule(rule)

        first = low_balance_engine.generate_decision(1, sample_state, memory)
        second = low_balance_engine.generate_decision(1, sample_state, memory)

        assert rule.actions[0].config["amount"] == "auto"
        assert first.params["amount"] == pytest.approx(400.0)
        assert first.params == second.params
        first.params["amount"] = 1
        assert second.params["amount"] == pytest.approx(400.0)


# =============================================================================
# TEST: Parameter synthesis
# =============================================================================

class TestResolveParams:
    """Synthesis hints resolved against state and risk"""

    def test_all_and_emergency_wallet(self, decision_engine, memory, sample_state):
        template = ActionTemplate(ActionType.TRANSFER, {"to": "emergency_wallet", "amount": "all", "token": "cUSD"})
        params = decision_engine.resolve_params(template, sample_state, memory)

        assert params["to"] == decision_engine.settings.emergency_wallet
        assert params["amount"] == 500.0

    def test_token_selected_from_goal(self, decision_engine, memory, sample_state):
        template = ActionTemplate(ActionType.BUY, {"token": "auto", "amount": "auto", "maxPrice": "auto"})
        params = decision_engine.resolve_params(template, dict(sample_state, price=2.0), memory, goal="accumulate cEUR")

        assert params["token"] == "cEUR"
        assert params["amount"] == 100.0
        assert params["maxPrice"] == pytest.approx(2.04)

    def test_token_defaults_to_largest_balance(self, decision_engine, memory, sample_state):
        template = ActionTemplate(ActionType.SELL, {"token": "selected", "amount": 1, "minPrice": "auto"})
        params = decision_engine.resolve_params(template, sample_state, memory)

        assert params["token"] == "cUSD"
        assert params["minPrice"] == pytest.approx(0.98)

    def test_amount_out_from_price(self, decision_engine, memory, sample_state):
        template = ActionTemplate(ActionType.REQUEST, {
            "tokenIn": "cUSD", "tokenOut": "CELO", "amountIn": "1000", "amountOut": "auto",
        })
        params = decision_engine.resolve_params(template, dict(sample_state, price=0.5), memory)

        assert params["amountIn"] == 1000.0
        assert params["amountOut"] == pytest.approx(500.0)

    def test_optimal_amount_scales_with_risk(self, decision_engine, memory, sample_state):
        calm = decision_engine.calculate_optimal_amount(sample_state, ActionType.TRANSFER, risk=0)
        risky = decision_engine.calculate_optimal_amount(sample_state, ActionType.TRANSFER, risk=100)

        assert calm == pytest.approx(50.0)
        assert risky == pytest.approx(25.0)


# =============================================================================
# TEST: Catalog
# =============================================================================

class TestCatalog:

    def test_rule_requires_known_trigger(self, decision_engine):
        with pytest.raises(CatalogError):
            decision_engine.add_rule(transfer_rule("orphan", "missing", []))

    def test_trigger_with_rules_cannot_be_removed(self, low_balance_engine):
        low_balance_engine.add_rule(transfer_rule("r", "low", []))
        with pytest.raises(CatalogError):
            low_balance_engine.remove_trigger("low")

        low_balance_engine.remove_rule("r")
        low_balance_engine.remove_trigger("low")
        assert low_balance_engine.get_triggers() == []

    def test_weight_outside_unit_interval(self):
        with pytest.raises(CatalogError):
            DecisionCondition("balance", Operator.LT, 1, weight=1.5)

    def test_rule_round_trip(self):
        rule = default_rules()[0]
        assert DecisionRule.from_dict(rule.to_dict()) == rule

    def test_default_catalog_loads(self, decision_engine):
        load_default_catalog(decision_engine)

        assert len(decision_engine.get_triggers()) == len(default_triggers()) == 7
        assert len(decision_engine.get_rules()) == 7
        assert len(decision_engine.get_ml_models()) == 3

    def test_default_catalog_emergency_withdrawal_needs_wallet(self, decision_engine, memory, sample_state):
        """40 cUSD: emergency_withdrawal wins on priority; unconfigured wallet means the transfer is rejected"""
        load_default_catalog(decision_engine)
        state = dict(sample_state, cusd_balance=40.0, token_balances={"CELO": 10.0, "cUSD": 40.0, "cEUR": 0.0})

        decision = decision_engine.generate_decision(1, state, memory, now=NOW)

        assert decision.rule_id == "emergency_withdrawal"
        assert decision.action == "transfer"
        assert decision.params == {"to": ZERO_ADDRESS, "amount": 40.0, "token": "cUSD"}
        assert "low_balance_alert" in decision.triggered_by

        result = validate_action(decision.action, decision.params, state)
        assert not result.is_valid
        assert result.checks_failed == ["recipient"]
        print(f"✅ {decision.reasoning}")

    def test_default_catalog_emergency_withdrawal_to_configured_wallet(self, memory, sample_state, test_addresses):
        engine = DecisionEngine(DecisionSettings(emergency_wallet=test_addresses["recipient"]))
        load_default_catalog(engine)
        state = dict(sample_state, cusd_balance=40.0, token_balances={"CELO": 10.0, "cUSD": 40.0, "cEUR": 0.0})

        decision = engine.generate_decision(1, state, memory, now=NOW)

        assert decision.params["to"] == test_addresses["recipient"]
        assert validate_action(decision.action, decision.params, state).is_valid
