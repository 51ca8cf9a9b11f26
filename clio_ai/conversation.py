# conversation.py
from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from loguru import logger

from clio_ai.adapters.base import ProviderAdapter, ProviderRequest
from clio_ai.errors import BusyError, ClioError, ParseError, ProviderError
from clio_ai.models import ModelRegistry, ModelSpec
from clio_ai.prompts import build_system_prompt
from clio_ai.tools.actions import READ_ONLY_ACTIONS, Action, ExecutionResult, Skipped
from clio_ai.tools.executor import ToolExecutor
from clio_ai.tools.parser import parse_response
from clio_ai.turns import Conversation, Turn

CONTEXT_KEYWORDS = (
    "summarize", "summarise", "explain", "understand", "what is this",
    "what does", "describe", "about this",
)
CONTEXT_FILES = ("README.md", "Cargo.toml", "package.json", "pyproject.toml", "go.mod")
CONTEXT_FILE_CHARS = 1500


class State(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    APPLYING = "applying"
    FAILED = "failed"


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for retryable provider errors."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int, error: ProviderError) -> float:
        retry_after = getattr(error, "retry_after", None)
        backoff = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if retry_after is not None:
            return min(self.max_delay, max(backoff, retry_after))
        return backoff


@dataclass
class TurnOutcome:
    status: OutcomeStatus
    model_id: str
    replies: List[str] = field(default_factory=list)
    results: List[ExecutionResult] = field(default_factory=list)
    skipped: List[Skipped] = field(default_factory=list)
    error: Optional[ClioError] = None
    attempts: int = 0
    rounds: int = 0
    note: str = ""

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED

    @property
    def explanation(self) -> str:
        """One-line summary for the user."""
        if self.status is OutcomeStatus.CANCELLED:
            if self.note:
                return f"Cancelled; {self.note}"
            return "Cancelled; the partial response was kept and no actions were executed."
        if self.status is OutcomeStatus.FAILED and self.error is not None:
            provider = getattr(self.error, "provider", "") or self.model_id
            tries = f" after {self.attempts} attempt(s)" if self.attempts > 1 else ""
            return f"{provider} request failed{tries} [{self.error.kind}]: {self.error.message}"
        failed = sum(1 for r in self.results if not r.ok)
        parts = []
        if self.results:
            parts.append(f"{len(self.results)} action(s): {len(self.results) - failed} ok, {failed} failed")
        if self.skipped:
            parts.append(f"{len(self.skipped)} directive(s) skipped")
        if self.note:
            parts.append(self.note)
        return "; ".join(parts) if parts else "No action taken."


class _RequestFailed(Exception):
    def __init__(self, error: ProviderError, attempts: int):
        super().__init__(error.message)
        self.error = error
        self.attempts = attempts


@dataclass
class _Reply:
    text: str
    attempts: int
    cancelled: bool = False
    streamed: bool = False


def needs_repo_context(prompt: str) -> bool:
    low = (prompt or "").lower()
    return any(k in low for k in CONTEXT_KEYWORDS)


def gather_repo_context(root: str | Path) -> str:
    """Top-level listing plus the head of well-known project files."""
    root = Path(root)
    lines = ["FILES:"]
    try:
        for entry in sorted(root.iterdir(), key=lambda p: p.name):
            lines.append(entry.name + ("/" if entry.is_dir() else ""))
    except OSError as e:
        logger.warning("gather_repo_context: cannot list '{}': {}", str(root), e)
    for name in CONTEXT_FILES:
        p = root / name
        if not p.is_file():
            continue
        try:
            text = p.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("gather_repo_context: cannot read '{}': {}", name, e)
            continue
        lines.append(f"\n--- {name} ---\n{text[:CONTEXT_FILE_CHARS]}")
    context = "\n".join(lines)
    logger.debug("gather_repo_context → {} chars", len(context))
    return context


class ConversationManager:
    """
    Owns the conversation, the active model and the round loop:
    request → parse → execute → (follow-up when results need the model again).

    One outstanding request at a time; overlapping submit/switch_model
    calls raise BusyError instead of blocking.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        adapter_factory: Callable[[ModelSpec], ProviderAdapter],
        executor: ToolExecutor,
        *,
        model_id: str,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 120.0,
        max_rounds: int = 5,
        stream: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self.adapter_factory = adapter_factory
        self.executor = executor
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.max_rounds = max(1, max_rounds)
        self.stream = stream
        self._sleep = sleep
        self._active = registry.lookup(model_id)
        self._conversation = Conversation()
        self._state = State.IDLE
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._closed = False
        self.system_prompt = build_system_prompt(str(executor.root))
        logger.info(
            "ConversationManager init → model='{}' provider='{}' stream={} max_rounds={}",
            self._active.id, self._active.provider, stream, self.max_rounds,
        )

    # ---------------- properties ----------------

    @property
    def state(self) -> State:
        return self._state

    @property
    def active_model(self) -> ModelSpec:
        return self._active

    @property
    def history(self) -> Tuple[Turn, ...]:
        return self._conversation.turns

    @property
    def closed(self) -> bool:
        return self._closed

    # ---------------- control ----------------

    def switch_model(self, model_id: str) -> ModelSpec:
        if not self._lock.acquire(blocking=False):
            raise BusyError("Cannot switch models while a request is in progress.")
        try:
            spec = self.registry.lookup(model_id)
            previous = self._active
            self._active = spec
            logger.info("switch_model: '{}' → '{}' (history={} turns)", previous.id, spec.id, len(self._conversation))
            return spec
        finally:
            self._lock.release()

    def cancel(self) -> None:
        """Ask the in-flight request to stop at the next chunk boundary."""
        if self._state is not State.IDLE:
            logger.info("cancel requested (state={})", self._state.value)
        self._cancel.set()

    def shutdown(self) -> None:
        self._closed = True
        self._cancel.set()
        logger.info("ConversationManager shutdown")

    # ---------------- main entry ----------------

    def submit(
        self,
        prompt: str,
        *,
        stream: Optional[bool] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
    ) -> TurnOutcome:
        """
        Run one user prompt to completion. Provider errors come back as a
        FAILED outcome rather than an exception; only BusyError is raised.
        """
        if self._closed:
            raise BusyError("The session has been shut down.")
        if not self._lock.acquire(blocking=False):
            raise BusyError()
        try:
            self._cancel.clear()
            return self._run(prompt, self.stream if stream is None else stream, on_chunk)
        finally:
            self._state = State.IDLE
            self._lock.release()

    def _run(self, prompt: str, stream: bool, on_chunk: Optional[Callable[[str], None]]) -> TurnOutcome:
        spec = self._active
        adapter = self.adapter_factory(spec)
        outcome = TurnOutcome(status=OutcomeStatus.COMPLETED, model_id=spec.id)

        context = gather_repo_context(self.executor.root) if needs_repo_context(prompt) else None
        self._conversation.append(Turn.user(prompt, context=context))
        logger.info("submit → model='{}' prompt_len={} context={}", spec.id, len(prompt), bool(context))

        previous_results: Optional[str] = None
        for round_no in range(1, self.max_rounds + 1):
            outcome.rounds = round_no
            self._state = State.AWAITING_RESPONSE
            try:
                reply = self._request(adapter, spec, stream, on_chunk)
            except _RequestFailed as e:
                return self._fail(outcome, e.error, e.attempts)
            outcome.attempts += reply.attempts

            if reply.cancelled:
                if reply.streamed and reply.text:
                    self._conversation.append(Turn.model(reply.text, spec.id, partial=True))
                else:
                    outcome.note = "no model turn was recorded."
                outcome.status = OutcomeStatus.CANCELLED
                logger.info("submit: cancelled in round {} (partial_len={})", round_no, len(reply.text))
                return outcome

            try:
                parsed = parse_response(reply.text)
            except ParseError as e:
                return self._fail(outcome, e, 0)

            self._conversation.append(
                Turn.model(reply.text, spec.id, actions=parsed.actions, skipped=parsed.skipped)
            )
            if parsed.reply:
                outcome.replies.append(parsed.reply)
            outcome.skipped.extend(parsed.skipped)
            if not parsed.has_directives:
                break

            self._state = State.APPLYING
            results, interrupted = self._apply(parsed.actions)
            outcome.results.extend(results)
            self._conversation.append(Turn.tool_result(results, parsed.skipped))
            if interrupted:
                outcome.status = OutcomeStatus.CANCELLED
                outcome.note = f"{len(results)} of {len(parsed.actions)} action(s) ran before the interrupt."
                logger.info("submit: interrupted while applying ({})", outcome.note)
                return outcome

            # read results, failures and skips go back to the model so it can continue or recover
            reads = any(isinstance(a, READ_ONLY_ACTIONS) for a in parsed.actions)
            failed = any(not r.ok for r in results)
            if not (reads or failed or parsed.skipped):
                break
            signature = json.dumps(
                [r.to_dict() for r in results] + [s.reason for s in parsed.skipped], sort_keys=True
            )
            if signature == previous_results:
                outcome.note = "No further progress possible."
                logger.info("submit: results repeated in round {}; stopping", round_no)
                break
            previous_results = signature
            if round_no == self.max_rounds:
                outcome.note = f"Stopped after {self.max_rounds} round(s)."
                logger.warning("submit: follow-up rounds exhausted ({})", self.max_rounds)
            elif self._cancel.is_set():
                outcome.status = OutcomeStatus.CANCELLED
                return outcome

        logger.info("submit ✓ rounds={} actions={} skipped={}", outcome.rounds, len(outcome.results), len(outcome.skipped))
        return outcome

    def _apply(self, actions: Sequence[Action]) -> Tuple[List[ExecutionResult], bool]:
        """Execute in order; stops between actions on cancel() or Ctrl-C."""
        results: List[ExecutionResult] = []
        try:
            for action in actions:
                if self._cancel.is_set():
                    return results, True
                results.append(self.executor.execute(action))
        except KeyboardInterrupt:
            logger.info("_apply: interrupted by the user after {} action(s)", len(results))
            return results, True
        failed = sum(1 for r in results if not r.ok)
        logger.info("_apply: {} action(s), {} ok, {} failed", len(results), len(results) - failed, failed)
        return results, False

    def _fail(self, outcome: TurnOutcome, error: ClioError, attempts: int) -> TurnOutcome:
        self._state = State.FAILED
        outcome.status = OutcomeStatus.FAILED
        outcome.error = error
        outcome.attempts += attempts
        logger.error("submit ✗ [{}] {} (attempts={})", error.kind, error.message, outcome.attempts)
        return outcome

    # ---------------- provider call with retry ----------------

    def _request(
        self,
        adapter: ProviderAdapter,
        spec: ModelSpec,
        stream: bool,
        on_chunk: Optional[Callable[[str], None]],
    ) -> _Reply:
        request = ProviderRequest(spec.id, self._conversation.turns, self.system_prompt)
        attempt = 0
        while True:
            attempt += 1
            pieces: List[str] = []
            try:
                if stream:
                    return self._consume_stream(adapter, request, pieces, attempt, on_chunk)
                response = adapter.send(request, timeout=self.timeout)
                if self._cancel.is_set():
                    logger.info("_request: discarding response of a cancelled blocking call")
                    return _Reply("", attempt, cancelled=True)
                return _Reply(response.text, attempt)
            except KeyboardInterrupt:
                logger.info("_request: interrupted by the user")
                return _Reply("".join(pieces), attempt, cancelled=True, streamed=bool(stream))
            except ProviderError as e:
                if not e.retryable or pieces or attempt > self.retry_policy.max_retries:
                    raise _RequestFailed(e, attempt) from e
                delay = self.retry_policy.delay(attempt, e)
                logger.warning(
                    "_request: [{}] {}; retry {}/{} in {:.1f}s",
                    e.kind, e.message, attempt, self.retry_policy.max_retries, delay,
                )
                try:
                    self._sleep(delay)
                except KeyboardInterrupt:
                    logger.info("_request: interrupted during retry backoff")
                    return _Reply("", attempt, cancelled=True)
                if self._cancel.is_set():
                    return _Reply("", attempt, cancelled=True)

    def _consume_stream(
        self,
        adapter: ProviderAdapter,
        request: ProviderRequest,
        pieces: List[str],
        attempt: int,
        on_chunk: Optional[Callable[[str], None]],
    ) -> _Reply:
        chunks = adapter.stream(request, timeout=self.timeout)
        try:
            for chunk in chunks:
                if self._cancel.is_set():
                    return _Reply("".join(pieces), attempt, cancelled=True, streamed=True)
                if chunk.text:
                    pieces.append(chunk.text)
                    if on_chunk:
                        on_chunk(chunk.text)
                if chunk.done:
                    break
        finally:
            close = getattr(chunks, "close", None)
            if close:
                close()
        return _Reply("".join(pieces), attempt, streamed=True)
