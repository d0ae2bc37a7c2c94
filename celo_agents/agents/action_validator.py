"""
Local Action Validation

Best-effort structural and policy checks run before any dispatch:
1. Action type known
2. Required fields present
3. Amounts numeric and strictly positive
4. Recipient is not the zero address
5. Transfer-like amounts within the locally observed balance
6. Agent policy: permissions, blacklist/whitelist, per-tx and daily limits

Final enforcement happens on-chain; this only keeps obviously bad
transactions from being submitted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..infrastructure.config import ZERO_ADDRESS
from ..services.decision_engine import available_balance
from ..services.decision_rules import NO_ACTION, ActionType
from .agent_config import AgentConfig

logger = logging.getLogger("ActionValidator")

REQUIRED_FIELDS = {
    ActionType.TRANSFER: ["to", "amount"],
    ActionType.SWAP: ["tokenIn", "tokenOut", "amountIn"],
    ActionType.STAKE: ["protocol", "amount"],
    ActionType.UNSTAKE: ["protocol", "shares"],
    ActionType.CLAIM: ["protocol"],
    ActionType.BUY: ["token", "amount", "maxPrice"],
    ActionType.SELL: ["token", "amount", "minPrice"],
    ActionType.REQUEST: ["tokenIn", "tokenOut", "amountIn", "amountOut"],
    ActionType.MINT: ["recipient", "metadataURI"],
    ActionType.NOTIFY: ["message"],
}

POSITIVE_FIELDS = ("amount", "amountIn", "amountOut", "shares", "maxPrice", "minPrice")

# action -> (amount field, token field) checked against observed balance
TRANSFER_LIKE = {
    ActionType.TRANSFER: ("amount", "token"),
    ActionType.STAKE: ("amount", "token"),
    ActionType.SELL: ("amount", "token"),
    ActionType.SWAP: ("amountIn", "tokenIn"),
}


@dataclass
class ValidationResult:
    is_valid: bool
    reason: Optional[str] = None
    checks_passed: List[str] = field(default_factory=list)
    checks_failed: List[str] = field(default_factory=list)


def validate_action(
    action: str,
    params: Dict[str, Any],
    current_state: Dict[str, Any],
    config: Optional[AgentConfig] = None,
) -> ValidationResult:
    """Validate a proposed action; "none" always passes."""
    result = ValidationResult(is_valid=True)
    params = params or {}

    if action == NO_ACTION:
        return result

    def fail(check: str, reason: str) -> ValidationResult:
        result.is_valid = False
        result.reason = reason
        result.checks_failed.append(check)
        logger.info(f"⛔ {action} rejected: {reason}")
        return result

    # 1. Known action
    try:
        action_type = ActionType(action)
    except ValueError:
        return fail("action_type", f"Unknown action: {action}")
    result.checks_passed.append("action_type")

    # 2. Required fields
    missing = [f for f in REQUIRED_FIELDS[action_type] if params.get(f) in (None, "")]
    if missing:
        return fail("required_fields", f"Missing required field(s) for {action}: {', '.join(missing)}")
    result.checks_passed.append("required_fields")

    # 3. Positive amounts
    for name in POSITIVE_FIELDS:
        if name not in params:
            continue
        try:
            value = float(params[name])
        except (TypeError, ValueError):
            return fail("positive_amounts", f"{name} must be numeric, got {params[name]!r}")
        if value <= 0:
            return fail("positive_amounts", f"{name} must be positive, got {value}")
    result.checks_passed.append("positive_amounts")

    # 4. Burn address
    for name in ("to", "recipient"):
        if str(params.get(name) or "").lower() == ZERO_ADDRESS:
            return fail("recipient", f"{name} is the zero address")
    result.checks_passed.append("recipient")

    # 5. Observed balance
    if action_type in TRANSFER_LIKE:
        amount_field, token_field = TRANSFER_LIKE[action_type]
        amount = float(params[amount_field])
        balance = available_balance(current_state, params.get(token_field))
        if amount > balance:
            return fail("balance", f"Insufficient balance: {amount_field} {amount} exceeds available {balance}")
        result.checks_passed.append("balance")

    # 6. Agent policy
    if config is not None:
        policy_failure = _check_policy(action_type, params, current_state, config)
        if policy_failure:
            return fail(*policy_failure)
        result.checks_passed.append("policy")

    return result


def _check_policy(action_type: ActionType, params: Dict[str, Any], state: Dict[str, Any], config: AgentConfig):
    """Returns (check, reason) on the first failed policy check, else None."""
    if config.permissions and action_type.value not in config.permissions:
        return "permissions", f"Action {action_type.value} not permitted for this agent"

    target = params.get("to") or params.get("recipient")
    if target:
        target_l = str(target).lower()
        if target_l in {a.lower() for a in config.blacklist}:
            return "blacklist", f"Recipient {target} is blacklisted"
        if config.whitelist and target_l not in {a.lower() for a in config.whitelist}:
            return "whitelist", f"Recipient {target} is not whitelisted"

    spend = params.get("amount", params.get("amountIn"))
    if spend is None or action_type in (ActionType.UNSTAKE, ActionType.CLAIM, ActionType.NOTIFY):
        return None
    spend = float(spend)

    limits = config.spending_limits
    if limits.per_tx and spend > limits.per_tx:
        return "per_tx_limit", f"Amount {spend} exceeds per-transaction limit {limits.per_tx}"

    if limits.daily:
        try:
            spent = float((state.get("agent_data") or {}).get("daily_spent", 0) or 0)
        except (TypeError, ValueError):
            spent = 0.0
        if spent + spend > limits.daily:
            return "daily_limit", f"Daily limit {limits.daily} exceeded: spent {spent} + {spend}"

    return None
