# Tools module
from .key_pool import KeyRotationPool
from .llm_service import LLMService, TextGenerator
from .prompt_gateway import (
    FailureKind, GatewayFailure, GatewayResult, ParseError, PromptGateway,
)
from .usage_ledger import UsageLedger, estimate_tokens
from .usage_monitor import UsageMonitor

__all__ = [
    # Model access
    "LLMService",
    "TextGenerator",
    "PromptGateway",
    "GatewayResult",
    "GatewayFailure",
    "ParseError",
    "FailureKind",
    # Keys & usage
    "KeyRotationPool",
    "UsageLedger",
    "UsageMonitor",
    "estimate_tokens",
]
