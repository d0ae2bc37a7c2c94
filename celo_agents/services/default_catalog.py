"""
Default trigger, rule and scoring-model catalog.
Loaded explicitly via load_default_catalog(engine); nothing registers itself.
"""

from ..infrastructure.config import ZERO_ADDRESS
from .decision_engine import DecisionEngine
from .decision_rules import ActionTemplate, ActionType, DecisionCondition, DecisionRule
from .scoring_models import ScoringModel, ScoringModelKind
from .triggers import (
    EventConfig,
    MLPredictionConfig,
    Operator,
    ScheduleConfig,
    ScheduleInterval,
    ThresholdConfig,
    Trigger,
)

CUSD = "cUSD"


def default_triggers():
    return [
        Trigger(
            id="low_balance_alert",
            name="Low Balance Alert",
            config=ThresholdConfig(metric="balance", operator=Operator.LT, value=100, token=CUSD),
            priority=7,
        ),
        Trigger(
            id="high_gas_price",
            name="High Gas Price",
            config=ThresholdConfig(metric="gas_price", operator=Operator.GT, value=20),
            priority=6,
        ),
        Trigger(
            id="daily_rebalance",
            name="Daily Rebalance",
            config=ScheduleConfig(interval=ScheduleInterval.DAILY, time="09:00", timezone="UTC"),
            priority=5,
        ),
        Trigger(
            id="donation_received",
            name="Donation Received",
            config=EventConfig(contract_address=ZERO_ADDRESS, event_name="DonationReceived"),
            priority=4,
        ),
        Trigger(
            id="yield_optimization",
            name="Yield Optimization",
            config=MLPredictionConfig(
                model="yield_predictor",
                features=["apy", "volume", "risk_score", "liquidity"],
                threshold=0.7,
            ),
            priority=3,
        ),
        Trigger(
            id="price_arbitrage",
            name="Price Arbitrage Opportunity",
            config=ThresholdConfig(metric="price_difference", operator=Operator.GT, value=0.05),
            priority=2,
        ),
        Trigger(
            id="trading_volume_spike",
            name="Trading Volume Spike",
            config=ThresholdConfig(metric="volume", operator=Operator.GT, value=1_000_000),
            priority=1,
        ),
    ]


def default_rules():
    return [
        DecisionRule(
            id="emergency_withdrawal",
            name="Emergency Withdrawal",
            trigger_id="low_balance_alert",
            conditions=[DecisionCondition("balance", Operator.LT, 50, weight=1.0)],
            actions=[ActionTemplate(ActionType.TRANSFER, {"to": "emergency_wallet", "amount": "all", "token": CUSD})],
            priority=7,
        ),
        DecisionRule(
            id="request_liquidity",
            name="Request Liquidity",
            trigger_id="low_balance_alert",
            conditions=[DecisionCondition("balance", Operator.LT, 100, weight=1.0)],
            actions=[ActionTemplate(ActionType.REQUEST, {
                "tokenIn": CUSD, "tokenOut": "CELO", "amountIn": "1000", "amountOut": "auto",
            })],
            priority=1,
        ),
        DecisionRule(
            id="gas_optimization",
            name="Gas Price Optimization",
            trigger_id="high_gas_price",
            conditions=[DecisionCondition("gas_price", Operator.GT, 20, weight=0.8)],
            actions=[ActionTemplate(ActionType.NOTIFY, {
                "message": "High gas prices detected, delaying transactions", "channel": "telegram",
            })],
            priority=6,
        ),
        DecisionRule(
            id="portfolio_rebalance",
            name="Portfolio Rebalance",
            trigger_id="daily_rebalance",
            conditions=[DecisionCondition("time_since_last_rebalance", Operator.GTE, 86400, weight=1.0)],
            actions=[ActionTemplate(ActionType.STAKE, {"protocol": "moola", "token": CUSD, "amount": "auto"})],
            priority=5,
        ),
        DecisionRule(
            id="donation_processing",
            name="Process Donation",
            trigger_id="donation_received",
            conditions=[DecisionCondition("donation_amount", Operator.GT, 0, weight=1.0)],
            actions=[
                ActionTemplate(ActionType.TRANSFER, {"to": "splitter_contract", "amount": "all", "token": "auto"}),
                ActionTemplate(ActionType.MINT, {
                    "recipient": "donor", "metadataURI": "ipfs://donation_receipt", "soulbound": False,
                }),
            ],
            priority=4,
        ),
        DecisionRule(
            id="arbitrage_trading",
            name="Arbitrage Trading",
            trigger_id="price_arbitrage",
            conditions=[DecisionCondition("price_difference", Operator.GT, 0.05, weight=1.0)],
            actions=[
                ActionTemplate(ActionType.BUY, {"token": "auto", "amount": "auto", "maxPrice": "auto"}),
                ActionTemplate(ActionType.SELL, {"token": "auto", "amount": "auto", "minPrice": "auto"}),
            ],
            priority=3,
        ),
        DecisionRule(
            id="volume_based_trading",
            name="Volume-Based Trading",
            trigger_id="trading_volume_spike",
            conditions=[DecisionCondition("volume", Operator.GT, 1_000_000, weight=0.8)],
            actions=[ActionTemplate(ActionType.BUY, {"token": CUSD, "amount": "1000", "maxPrice": "1.02"})],
            priority=2,
        ),
    ]


def default_models():
    return [
        ScoringModel(
            id="yield_predictor",
            name="Yield Prediction Model",
            kind=ScoringModelKind.REGRESSION,
            features=["apy", "volume", "risk_score", "liquidity"],
            weights=[0.4, 0.3, 0.2, 0.1],
            threshold=0.7,
            training_data=[
                [5.2, 1_000_000, 0.3, 5_000_000],
                [3.8, 500_000, 0.5, 2_000_000],
                [7.1, 2_000_000, 0.2, 8_000_000],
            ],
            accuracy=0.85,
        ),
        ScoringModel(
            id="anomaly_detector",
            name="Anomaly Detection Model",
            kind=ScoringModelKind.ANOMALY_DETECTION,
            features=["transaction_frequency", "amount_variance", "time_patterns"],
            weights=[0.5, 0.3, 0.2],
            threshold=0.8,
            training_data=[[10, 0.1, 0.8], [50, 0.3, 0.6], [5, 0.05, 0.9]],
            accuracy=0.92,
        ),
        ScoringModel(
            id="risk_assessor",
            name="Risk Assessment Model",
            kind=ScoringModelKind.CLASSIFICATION,
            features=["volatility", "liquidity", "historical_performance"],
            weights=[0.4, 0.4, 0.2],
            threshold=0.6,
            training_data=[[0.2, 0.8, 0.7], [0.5, 0.6, 0.4], [0.1, 0.9, 0.8]],
            accuracy=0.88,
        ),
    ]


def load_default_catalog(engine: DecisionEngine) -> DecisionEngine:
    """Register the stock triggers, models and rules (triggers first)."""
    for trigger in default_triggers():
        engine.add_trigger(trigger)
    for model in default_models():
        engine.add_ml_model(model)
    for rule in default_rules():
        engine.add_rule(rule)
    return engine
