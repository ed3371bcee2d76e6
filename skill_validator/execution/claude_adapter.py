"""
Claude Code CLI adapter for the Skill Validator.

Runs ``claude -p <prompt> --output-format stream-json --verbose`` in the
run's working directory and translates each stream-json line into the
validator's event vocabulary. Skills are made available by copying them
into ``<workdir>/.claude/skills/<name>``, where the CLI discovers them.
"""

import asyncio
import json
import shutil
import logging
from typing import Any, Dict, List, Optional

from .agent_adapter import AgentAdapter, AgentRequest, AgentType, EmitFn, make_event
from .environment import install_skill
from ..models.result import EventType
from ..exceptions import ExecutionError

logger = logging.getLogger(__name__)

# stream-json lines carrying whole tool results can be large
STREAM_LIMIT = 16 * 1024 * 1024


class ClaudeAdapter(AgentAdapter):
    """Adapter for Claude Code CLI.

    Prerequisites:
    - Claude Code CLI must be installed (`claude` in PATH)
    - Valid authentication configured

    Usage:
        adapter = ClaudeAdapter()
        await adapter.execute(
            AgentRequest(model, "Fix the type error in main.ts", workdir),
            events.append,
        )
    """

    def __init__(
        self,
        claude_path: Optional[str] = None,
        permission_mode: str = "acceptEdits",
        extra_args: Optional[List[str]] = None,
    ):
        """Initialize Claude adapter.

        Args:
            claude_path: Explicit path to the CLI (looked up in PATH if None)
            permission_mode: Value for ``--permission-mode``
            extra_args: Additional CLI arguments
        """
        self._claude_path = claude_path
        self.permission_mode = permission_mode
        self.extra_args = list(extra_args or [])

    def build_command(self, request: AgentRequest) -> List[str]:
        """Build the CLI invocation for a request."""
        return [
            self._get_claude_path(),
            "-p",
            request.prompt,
            "--output-format",
            "stream-json",
            "--verbose",
            "--model",
            request.model,
            "--permission-mode",
            self.permission_mode,
            *self.extra_args,
        ]

    async def execute(self, request: AgentRequest, emit: EmitFn) -> None:
        """Execute the prompt using Claude Code CLI.

        Raises:
            ExecutionError: If the CLI is missing, exits non-zero, or
                reports an error result
        """
        for skill_dir in request.skill_directories:
            await asyncio.to_thread(install_skill, request.work_dir, skill_dir)

        cmd = self.build_command(request)
        logger.debug(f"Executing Claude in {request.work_dir}: {request.prompt[:100]}...")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(request.work_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except FileNotFoundError:
            raise ExecutionError(
                "Claude CLI not found. Is it installed? "
                "Install with: npm install -g @anthropic-ai/claude-code"
            )

        emit(make_event(EventType.USER_MESSAGE, content=request.prompt))
        translator = StreamTranslator(emit)
        # Drained alongside stdout so a chatty CLI cannot fill the pipe
        stderr_task = asyncio.create_task(proc.stderr.read())

        try:
            async for raw in proc.stdout:
                line = raw.decode("utf-8", errors="replace").strip()
                if line:
                    translator.feed(line)
            translator.flush()
            stderr = await stderr_task
            returncode = await proc.wait()
        finally:
            # Timed out, aborted or the stream broke: don't leave the CLI running
            if not stderr_task.done():
                stderr_task.cancel()
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        if translator.error:
            raise ExecutionError(f"Agent reported an error: {translator.error}")

        if returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            emit(make_event(EventType.SESSION_ERROR, message=message or f"exit {returncode}"))
            raise ExecutionError(f"Claude CLI exited with {returncode}: {message}")

        if not translator.finished:
            emit(make_event(EventType.SESSION_IDLE))

        logger.debug(f"Claude execution complete in {request.work_dir}")

    def _get_claude_path(self) -> str:
        """Get path to Claude CLI.

        Raises:
            ExecutionError: If Claude CLI not found
        """
        if self._claude_path is None:
            self._claude_path = shutil.which("claude")
            if not self._claude_path:
                raise ExecutionError(
                    "Claude CLI not found in PATH. "
                    "Install with: npm install -g @anthropic-ai/claude-code"
                )
        return self._claude_path

    @property
    def agent_type(self) -> AgentType:
        return AgentType.CLAUDE

    def validate_environment(self) -> bool:
        """Check if Claude CLI is available."""
        try:
            self._get_claude_path()
            return True
        except ExecutionError:
            return False


class StreamTranslator:
    """Turns Claude Code stream-json lines into AgentEvents.

    Line types handled:
    - ``assistant``: text becomes assistant.message, each tool_use a
      tool.execution_start, usage an assistant.usage
    - ``user``: each tool_result becomes tool.execution_complete
    - ``result``: session.idle, or session.error when it is an error

    The CLI may split one API message over several ``assistant`` lines
    that share ``message.id`` and repeat its usage. Lines are buffered
    per id, so each message counts as one turn and its usage once.
    Call ``flush()`` when the stream ends.
    """

    def __init__(self, emit: EmitFn):
        self.emit = emit
        self.finished = False
        self.error: Optional[str] = None
        self._tool_names: Dict[str, str] = {}
        self._pending: Optional[Dict[str, Any]] = None

    def feed(self, line: str) -> None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON line from Claude CLI: {line[:200]}")
            return
        if not isinstance(message, dict):
            return

        kind = message.get("type")
        if kind == "assistant":
            self._on_assistant(message.get("message") or {})
        elif kind == "user":
            self.flush()
            self._on_user(message.get("message") or {})
        elif kind == "result":
            self.flush()
            self._on_result(message)

    def flush(self) -> None:
        """Emit the buffered assistant message, if any."""
        pending, self._pending = self._pending, None
        if pending is None:
            return

        blocks = pending["blocks"]
        text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
        tool_uses = [b for b in blocks if b.get("type") == "tool_use"]

        self.emit(make_event(
            EventType.ASSISTANT_MESSAGE,
            content=text,
            tool_requests=[{"name": b.get("name", "unknown")} for b in tool_uses],
        ))

        for block in tool_uses:
            name = block.get("name", "unknown")
            self._tool_names[block.get("id", "")] = name
            logger.debug(f"Agent tool call: {name}")
            self.emit(make_event(
                EventType.TOOL_EXECUTION_START,
                tool_name=name,
                arguments=block.get("input", {}),
            ))

        usage = pending["usage"]
        if usage:
            self.emit(make_event(
                EventType.ASSISTANT_USAGE,
                input_tokens=int(usage.get("input_tokens") or 0),
                output_tokens=int(usage.get("output_tokens") or 0),
            ))

    def _on_assistant(self, message: Dict[str, Any]) -> None:
        message_id = message.get("id")
        if self._pending is not None and (
            message_id is None or message_id != self._pending["id"]
        ):
            self.flush()
        if self._pending is None:
            self._pending = {"id": message_id, "blocks": [], "usage": {}}

        self._pending["blocks"].extend(_content_blocks(message))
        # Repeated on every line of a message; the latest is the most complete
        usage = message.get("usage")
        if isinstance(usage, dict) and usage:
            self._pending["usage"] = usage

        if message_id is None:
            self.flush()

    def _on_user(self, message: Dict[str, Any]) -> None:
        for block in _content_blocks(message):
            if block.get("type") != "tool_result":
                continue
            self.emit(make_event(
                EventType.TOOL_EXECUTION_COMPLETE,
                tool_name=self._tool_names.get(block.get("tool_use_id", ""), "unknown"),
                result=_result_text(block.get("content")),
                success=not block.get("is_error", False),
            ))

    def _on_result(self, message: Dict[str, Any]) -> None:
        self.finished = True
        if message.get("is_error") or message.get("subtype", "success") != "success":
            self.error = str(message.get("result") or message.get("subtype") or "Session error")
            self.emit(make_event(EventType.SESSION_ERROR, message=self.error))
        else:
            self.emit(make_event(EventType.SESSION_IDLE))


def _content_blocks(message: Dict[str, Any]) -> List[Dict[str, Any]]:
    content = message.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return [b for b in content if isinstance(b, dict)]
    return []


def _result_text(content: Any) -> str:
    if isinstance(content, list):
        return "".join(
            b.get("text", "") for b in content if isinstance(b, dict)
        )
    return "" if content is None else str(content)
