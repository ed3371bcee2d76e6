"""
Execution layer for the Skill Validator.

Provides:
- RetryManager: Bounded retry with exponential backoff
- TimeoutManager: Timeout enforcement for coroutines
- Environment: Isolated working directory per run
- AgentAdapter: Abstract interface to the agent runtime
- ClaudeAdapter: Claude Code CLI implementation
- MockAdapter: Scripted events for tests
"""

from .retry_manager import RetryManager
from .timeout_manager import TimeoutManager
from .environment import Environment, install_skill, is_within
from .agent_adapter import AgentAdapter, AgentRequest, AgentType, MockAdapter, make_event
from .claude_adapter import ClaudeAdapter, StreamTranslator

__all__ = [
    "RetryManager",
    "TimeoutManager",
    "Environment",
    "install_skill",
    "is_within",
    "AgentAdapter",
    "AgentRequest",
    "AgentType",
    "MockAdapter",
    "make_event",
    "ClaudeAdapter",
    "StreamTranslator",
]
