"""
Action Validation Tests
Structural checks, observed-balance checks and agent policy

Run: python -m pytest tests/test_action_validation.py -v
"""

import pytest

from celo_agents.agents.action_validator import REQUIRED_FIELDS, validate_action
from celo_agents.agents.agent_config import AgentConfig, SpendingLimits
from celo_agents.infrastructure.config import ZERO_ADDRESS
from celo_agents.services.decision_rules import ActionType

RECIPIENT = "0x5E047DeB5eb22F4E4A7f2207087369468575e3EF"
OTHER = "0x000000000000000000000000000000000000dEaD"


class TestStructuralValidation:
    """Required fields, known action, strictly positive amounts"""

    def test_none_always_valid(self, sample_state):
        assert validate_action("none", {}, sample_state).is_valid

    def test_scenario_d_missing_to(self, sample_state):
        result = validate_action("transfer", {"amount": 10, "token": "cUSD"}, sample_state)

        assert not result.is_valid
        assert "to" in result.reason
        assert result.reason == "Missing required field(s) for transfer: to"
        assert result.checks_failed == ["required_fields"]

    def test_unknown_action(self, sample_state):
        result = validate_action("teleport", {"amount": 1}, sample_state)
        assert not result.is_valid
        assert "Unknown action" in result.reason

    @pytest.mark.parametrize("amount", [0, -5, "-1", "abc"])
    def test_non_positive_or_non_numeric_amount(self, sample_state, amount):
        result = validate_action("transfer", {"to": RECIPIENT, "amount": amount}, sample_state)
        assert not result.is_valid
        assert result.checks_failed == ["positive_amounts"]

    def test_every_action_has_required_fields(self):
        assert set(REQUIRED_FIELDS) == set(ActionType)

    def test_valid_stake(self, sample_state):
        result = validate_action("stake", {"protocol": "moola", "token": "cUSD", "amount": 100}, sample_state)
        assert result.is_valid
        assert "balance" in result.checks_passed


class TestBalanceValidation:
    """Transfer-like actions cannot exceed the observed balance"""

    def test_transfer_over_balance(self, sample_state):
        result = validate_action("transfer", {"to": RECIPIENT, "amount": 501, "token": "cUSD"}, sample_state)
        assert not result.is_valid
        assert "Insufficient balance" in result.reason

    def test_swap_checks_token_in(self, sample_state):
        params = {"tokenIn": "CELO", "tokenOut": "cUSD", "amountIn": 20}
        result = validate_action("swap", params, sample_state)
        assert not result.is_valid

        params["amountIn"] = 5
        assert validate_action("swap", params, sample_state).is_valid

    def test_claim_has_no_balance_check(self, sample_state):
        result = validate_action("claim", {"protocol": "moola"}, dict(sample_state, cusd_balance=0))
        assert result.is_valid
        assert "balance" not in result.checks_passed

    def test_token_given_by_address(self, sample_state, test_addresses):
        """cEUR by address is checked against the cEUR balance, not cUSD"""
        params = {"tokenIn": test_addresses["cEUR"], "tokenOut": "cUSD", "amountIn": 100}
        result = validate_action("swap", params, sample_state)
        assert not result.is_valid
        assert result.checks_failed == ["balance"]

        params = {"to": RECIPIENT, "amount": 400, "token": test_addresses["cUSD"].lower()}
        assert validate_action("transfer", params, sample_state).is_valid

    def test_unknown_token_has_no_balance(self, sample_state):
        params = {"to": RECIPIENT, "amount": 1, "token": "0x1111111111111111111111111111111111111111"}
        result = validate_action("transfer", params, sample_state)
        assert not result.is_valid
        assert "exceeds available 0.0" in result.reason
        print("✅ Unknown token rejected instead of borrowing the cUSD balance")

    def test_transfer_without_token_checks_cusd(self, sample_state):
        params = {"to": RECIPIENT, "amount": 400}
        assert validate_action("transfer", params, sample_state).is_valid
        assert not validate_action("transfer", params, dict(sample_state, cusd_balance=300.0)).is_valid


class TestRecipientValidation:
    """Zero address is never a valid destination"""

    def test_zero_address_transfer_rejected(self, sample_state):
        result = validate_action("transfer", {"to": ZERO_ADDRESS, "amount": 500.0, "token": "cUSD"}, sample_state)
        assert not result.is_valid
        assert result.checks_failed == ["recipient"]
        assert "zero address" in result.reason

    def test_zero_address_mint_rejected(self, sample_state):
        result = validate_action("mint", {"recipient": ZERO_ADDRESS, "metadataURI": "ipfs://x"}, sample_state)
        assert result.checks_failed == ["recipient"]

    def test_real_recipient_passes(self, sample_state):
        result = validate_action("transfer", {"to": RECIPIENT, "amount": 1}, sample_state)
        assert "recipient" in result.checks_passed


class TestPolicyValidation:
    """Local best-effort limits and address lists from AgentConfig"""

    def test_per_tx_limit(self, sample_state):
        config = AgentConfig(goal="g", spending_limits=SpendingLimits(per_tx=50))
        result = validate_action("transfer", {"to": RECIPIENT, "amount": 60}, sample_state, config)

        assert not result.is_valid
        assert result.checks_failed == ["per_tx_limit"]

    def test_daily_limit_uses_daily_spent(self, sample_state):
        config = AgentConfig(goal="g", spending_limits=SpendingLimits(daily=100))
        state = dict(sample_state, agent_data={"daily_spent": 80})

        assert not validate_action("transfer", {"to": RECIPIENT, "amount": 30}, state, config).is_valid
        assert validate_action("transfer", {"to": RECIPIENT, "amount": 20}, state, config).is_valid

    def test_zero_limits_disabled(self, sample_state):
        config = AgentConfig(goal="g", spending_limits=SpendingLimits(daily=0, per_tx=0))
        assert validate_action("transfer", {"to": RECIPIENT, "amount": 400}, sample_state, config).is_valid

    def test_blacklist(self, sample_state):
        config = AgentConfig(goal="g", blacklist=[RECIPIENT.lower()])
        result = validate_action("transfer", {"to": RECIPIENT, "amount": 1}, sample_state, config)
        assert result.checks_failed == ["blacklist"]

    def test_whitelist(self, sample_state):
        config = AgentConfig(goal="g", whitelist=[RECIPIENT])

        assert validate_action("transfer", {"to": RECIPIENT, "amount": 1}, sample_state, config).is_valid
        result = validate_action("mint", {"recipient": OTHER, "metadataURI": "ipfs://x"}, sample_state, config)
        assert result.checks_failed == ["whitelist"]

    def test_permissions(self, sample_state):
        config = AgentConfig(goal="g", permissions=["stake", "claim"])

        assert validate_action("claim", {"protocol": "moola"}, sample_state, config).is_valid
        result = validate_action("transfer", {"to": RECIPIENT, "amount": 1}, sample_state, config)
        assert result.checks_failed == ["permissions"]
