"""
Abstract agent adapter for the Skill Validator.

Defines the boundary to the agent runtime. An adapter runs one prompt in
one working directory and pushes typed AgentEvents through a callback;
the validator depends only on that event vocabulary.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Any

from ..models.result import AgentEvent, EventType
from ..exceptions import ExecutionError

EmitFn = Callable[[AgentEvent], None]


class AgentType(Enum):
    """Supported agent types."""

    CLAUDE = "claude"
    MOCK = "mock"  # For testing


def make_event(event_type: str, **data: Any) -> AgentEvent:
    """Build an AgentEvent stamped with the current time."""
    return AgentEvent(type=event_type, timestamp=time.time(), data=data)


@dataclass
class AgentRequest:
    """Everything an adapter needs for one run.

    Attributes:
        model: Model identifier for the agent
        prompt: The scenario prompt
        work_dir: Isolated working directory for this run
        skill_directories: Skills to make available (empty for baseline)
    """

    model: str
    prompt: str
    work_dir: Path
    skill_directories: List[Path] = field(default_factory=list)

    @property
    def with_skill(self) -> bool:
        return bool(self.skill_directories)


class AgentAdapter(ABC):
    """Abstract base class for agent adapters.

    Concrete implementations:
    - ClaudeAdapter: For Claude Code CLI
    - MockAdapter: For testing

    Example implementation:
        class MyAdapter(AgentAdapter):
            agent_type = AgentType.CLAUDE

            async def execute(self, request, emit):
                emit(make_event(EventType.USER_MESSAGE, content=request.prompt))
                reply = await my_agent.run(request.prompt, cwd=request.work_dir)
                emit(make_event(EventType.ASSISTANT_MESSAGE, content=reply))
                emit(make_event(EventType.SESSION_IDLE))
    """

    @abstractmethod
    async def execute(self, request: AgentRequest, emit: EmitFn) -> None:
        """Run the prompt, emitting events until the session is idle.

        Args:
            request: The run request
            emit: Callback receiving each event in order

        Raises:
            ExecutionError: If the agent fails or reports a session error
        """
        pass

    @property
    @abstractmethod
    def agent_type(self) -> AgentType:
        """Return the type of agent this adapter supports."""
        pass

    def validate_environment(self) -> bool:
        """Check if the agent's prerequisites are met."""
        return True


class MockAdapter(AgentAdapter):
    """Mock adapter for testing.

    Plays back scripted events without running an agent. Skill runs use
    ``skill_events`` when given, so tests can make the two sides differ.
    """

    def __init__(
        self,
        events: Optional[List[AgentEvent]] = None,
        skill_events: Optional[List[AgentEvent]] = None,
        files: Optional[Dict[str, str]] = None,
        skill_files: Optional[Dict[str, str]] = None,
        delay_seconds: float = 0.0,
        should_error: bool = False,
        error_message: str = "Mock error",
    ):
        """Initialize mock adapter.

        Args:
            events: Events emitted for baseline runs (and skill runs
                when ``skill_events`` is None)
            skill_events: Events emitted for skill runs
            files: Files written into the working directory on baseline runs
            skill_files: Files written on skill runs (defaults to ``files``)
            delay_seconds: Sleep before finishing, to exercise timeouts
            should_error: If True, emit a session error and raise
            error_message: Error message to use
        """
        self.events = events if events is not None else [
            make_event(EventType.USER_MESSAGE, content="prompt"),
            make_event(EventType.ASSISTANT_MESSAGE, content="Mock response"),
            make_event(EventType.SESSION_IDLE),
        ]
        self.skill_events = skill_events
        self.files = files or {}
        self.skill_files = skill_files
        self.delay_seconds = delay_seconds
        self.should_error = should_error
        self.error_message = error_message

        # Track calls for assertions
        self.calls: List[AgentRequest] = []
        self.start_times: List[float] = []

    async def execute(self, request: AgentRequest, emit: EmitFn) -> None:
        """Execute mock request."""
        self.calls.append(request)
        self.start_times.append(time.monotonic())

        files = self.files
        if request.with_skill and self.skill_files is not None:
            files = self.skill_files
        for rel_path, content in files.items():
            target = request.work_dir / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        if self.should_error:
            emit(make_event(EventType.SESSION_ERROR, message=self.error_message))
            raise ExecutionError(self.error_message)

        events = self.events
        if request.with_skill and self.skill_events is not None:
            events = self.skill_events
        for event in events:
            emit(event)

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

    @property
    def agent_type(self) -> AgentType:
        return AgentType.MOCK

    @property
    def call_count(self) -> int:
        """Number of times execute was called."""
        return len(self.calls)

    @property
    def last_call(self) -> Optional[AgentRequest]:
        """Get the last call request."""
        return self.calls[-1] if self.calls else None
