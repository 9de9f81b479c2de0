"""LLM client implementations for CPA Alerts."""

from cpa_alerts.clients.claude import ClaudeClient, ClaudeResponse

__all__ = [
    "ClaudeClient",
    "ClaudeResponse",
]
