"""
Error Handling for Celo Agents
Structured exceptions for the decision and execution engines

Features:
- Custom exception classes with error codes
- Error tracking and aggregation for isolated (swallowed) failures
- Retry logic for blockchain reads
"""

import asyncio
import logging
import traceback
from datetime import datetime
from typing import Any, Callable, Dict, Optional, TypeVar
from functools import wraps
from enum import Enum

logger = logging.getLogger("ErrorHandler")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Programming-contract violations
    AGENT_NOT_REGISTERED = "AGENT_NOT_REGISTERED"
    AGENT_ALREADY_REGISTERED = "AGENT_ALREADY_REGISTERED"
    CATALOG_ERROR = "CATALOG_ERROR"

    # Cycle errors
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    DISPATCH_ERROR = "DISPATCH_ERROR"
    BLOCKCHAIN_ERROR = "BLOCKCHAIN_ERROR"

    # Isolated evaluation errors
    TRIGGER_EVALUATION_ERROR = "TRIGGER_EVALUATION_ERROR"
    METRIC_UNAVAILABLE = "METRIC_UNAVAILABLE"
    RULE_EVALUATION_ERROR = "RULE_EVALUATION_ERROR"

    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================
# CUSTOM EXCEPTIONS
# ============================================

class CeloAgentsError(Exception):
    """Base exception for Celo Agents"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Dict = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            "success": False,
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp.isoformat()
            }
        }


class AgentNotRegisteredError(CeloAgentsError):
    """Execution requested for an agent id with no config/memory"""
    def __init__(self, agent_id: Any):
        super().__init__(
            f"Agent {agent_id} not registered",
            ErrorCode.AGENT_NOT_REGISTERED,
            {"agent_id": str(agent_id)}
        )
        self.agent_id = agent_id


class AgentAlreadyRegisteredError(CeloAgentsError):
    """Registration attempted for an id that already has a config"""
    def __init__(self, agent_id: Any):
        super().__init__(
            f"Agent {agent_id} already registered; use update_agent_config",
            ErrorCode.AGENT_ALREADY_REGISTERED,
            {"agent_id": str(agent_id)}
        )
        self.agent_id = agent_id


class CatalogError(CeloAgentsError):
    """Malformed or dangling trigger/rule/model catalog entry"""
    def __init__(self, message: str, entry_id: str = None):
        details = {"entry_id": entry_id} if entry_id else {}
        super().__init__(message, ErrorCode.CATALOG_ERROR, details)


class UnknownActionError(CeloAgentsError):
    """Action name has no handler"""
    def __init__(self, action: str):
        super().__init__(f"Unknown action: {action}", ErrorCode.UNKNOWN_ACTION, {"action": action})
        self.action = action


class ValidationFailedError(CeloAgentsError):
    """Proposed action failed local validation"""
    def __init__(self, reason: str, action: str = None):
        details = {"action": action} if action else {}
        super().__init__(reason, ErrorCode.VALIDATION_FAILED, details)
        self.reason = reason


class TriggerEvaluationError(CeloAgentsError):
    """A single trigger could not be evaluated"""
    def __init__(self, trigger_id: str, message: str, code: ErrorCode = ErrorCode.TRIGGER_EVALUATION_ERROR):
        super().__init__(message, code, {"trigger_id": trigger_id})
        self.trigger_id = trigger_id


class MetricUnavailableError(TriggerEvaluationError):
    """Observed state does not carry the requested metric"""
    def __init__(self, metric: str, trigger_id: str = None):
        super().__init__(
            trigger_id or "",
            f"Metric '{metric}' not present in observed state",
            ErrorCode.METRIC_UNAVAILABLE
        )
        self.details["metric"] = metric
        self.metric = metric


class RuleEvaluationError(CeloAgentsError):
    """A single rule could not be scored"""
    def __init__(self, rule_id: str, message: str):
        super().__init__(message, ErrorCode.RULE_EVALUATION_ERROR, {"rule_id": rule_id})
        self.rule_id = rule_id


class BlockchainError(CeloAgentsError):
    """Blockchain read failed"""
    def __init__(self, chain: str, message: str, tx_hash: str = None):
        details = {"chain": chain}
        if tx_hash:
            details["tx_hash"] = tx_hash
        super().__init__(message, ErrorCode.BLOCKCHAIN_ERROR, details)


class DispatchError(CeloAgentsError):
    """Blockchain client rejected or failed a write"""
    def __init__(self, action: str, message: str, original_error: Exception = None):
        details = {"action": action}
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(message, ErrorCode.DISPATCH_ERROR, details)
        self.action = action


# ============================================
# ERROR TRACKING
# ============================================

class ErrorTracker:
    """Tracks and aggregates errors that are isolated rather than raised"""

    def __init__(self, max_errors: int = 1000):
        self.errors: list = []
        self.max_errors = max_errors
        self.error_counts: Dict[str, int] = {}

    def track(self, error: Exception, source: str = None):
        """Track an error"""
        error_type = type(error).__name__

        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1

        error_info = {
            "type": error_type,
            "message": str(error),
            "source": source,
            "timestamp": datetime.now().isoformat(),
            "traceback": traceback.format_exc() if not isinstance(error, CeloAgentsError) else None
        }

        if isinstance(error, CeloAgentsError):
            error_info["code"] = error.code.value
            error_info["details"] = error.details

        self.errors.append(error_info)

        # Trim if too many
        if len(self.errors) > self.max_errors:
            self.errors = self.errors[-self.max_errors:]

        if not isinstance(error, CeloAgentsError):
            logger.error(f"Error tracked: {error_type} - {str(error)[:200]}")

    def get_stats(self) -> Dict:
        """Get error statistics"""
        return {
            "total_errors": len(self.errors),
            "error_counts": self.error_counts,
            "recent_errors": self.errors[-10:],
            "timestamp": datetime.now().isoformat()
        }

    def clear(self):
        """Clear error history"""
        self.errors.clear()
        self.error_counts.clear()


# ============================================
# RETRY LOGIC
# ============================================

T = TypeVar('T')


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Decorator for automatic retry with exponential backoff.
    Only for idempotent reads; writes are never retried.

    Usage:
        @retry(max_attempts=3, delay=1.0)
        async def get_native_balance(self, address):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception: Optional[BaseException] = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt < max_attempts - 1:
                        logger.warning(f"Retry {attempt + 1}/{max_attempts} for {func.__name__}: {e}")
                        await asyncio.sleep(current_delay)
                        current_delay *= backoff
                    else:
                        logger.error(f"All retries failed for {func.__name__}: {e}")

            raise last_exception

        return wrapper
    return decorator
