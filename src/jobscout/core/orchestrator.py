"""Tool-orchestration loop: model call, dispatch, budget, termination."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from loguru import logger

from jobscout.core.budget import BudgetState, BudgetTracker
from jobscout.core.conversation import Conversation, ConversationError, ConversationTurn, unique_call_ids
from jobscout.core.dispatcher import CancelProbe, ToolDispatcher, ToolInvocation
from jobscout.core.events import BudgetUpdate, Completion, ErrorEvent, EventEmitter, EventSink, TextDelta
from jobscout.core.provider import ModelProvider, ModelRequest, ModelResponse, TextChunk
from jobscout.core.session import ChatRequest, ConversationSession, HistoryStore, new_session_id
from jobscout.core.summary import build_job_summary
from jobscout.core.termination import TerminationDecision, decide
from jobscout.errors import ProviderCommunicationError, StreamClosedError
from jobscout.logging_utils import bind_session
from jobscout.tools.registry import CapabilityRegistry

PENDING_REASONS: dict[TerminationDecision, str] = {
    TerminationDecision.STOP_BUDGET: "not executed: context budget exhausted",
    TerminationDecision.STOP_MODEL_LIMIT: "not executed: model output limit reached",
    TerminationDecision.STOP_NATURAL: "not executed: run finished",
    TerminationDecision.STOP_ERROR: "not executed: run aborted",
}


@dataclass(frozen=True)
class RunOutcome:
    """Result of one orchestrator run."""

    session_id: str
    decision: TerminationDecision
    text: str
    budget: BudgetState
    iterations: int
    invocations: list[ToolInvocation]
    error: str | None = None
    cancelled: bool = False


@dataclass
class _RunState:
    iterations: int = 0
    text_parts: list[str] = field(default_factory=list)
    dispatched: bool = False
    text_after_tools: bool = False
    error: str | None = None
    cancelled: bool = False

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


class Orchestrator:
    """Drives one session per inbound message until a stop decision.

    One instance serves concurrent sessions: everything mutable lives in the
    per-run ``ConversationSession``; the registry and provider are shared
    read-only collaborators.
    """

    def __init__(
        self,
        *,
        provider: ModelProvider,
        registry: CapabilityRegistry,
        history: HistoryStore | None = None,
        system_prompt: str = "",
        max_tokens: int = 4096,
        context_limit: int = 200_000,
        context_threshold: float = 0.95,
        fallback_summary: bool = True,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._history = history
        self._system_prompt = system_prompt.strip()
        self._max_tokens = max_tokens
        self._context_limit = context_limit
        self._context_threshold = context_threshold
        self._fallback_summary = fallback_summary

    async def run(
        self,
        request: ChatRequest,
        sink: EventSink,
        *,
        is_cancelled: CancelProbe | None = None,
    ) -> RunOutcome:
        emitter = EventEmitter(sink)
        try:
            session = await self._open_session(request)
        except Exception as exc:
            return await self._abort_on_history(request, emitter, exc)
        bind_session(session.session_id)
        logger.info(
            "orchestrator.run.start agent={} history_turns={} tools={}",
            session.agent_id,
            len(session.conversation),
            len(self._registry),
        )
        dispatcher = ToolDispatcher(self._registry, emitter, is_cancelled=is_cancelled)
        state = _RunState()
        session.conversation.append_user(request.message)

        try:
            decision = await self._loop(session, emitter, dispatcher, state, is_cancelled)
            if decision is TerminationDecision.STOP_NATURAL:
                await self._inject_fallback_summary(session, emitter, state)
        except ProviderCommunicationError as exc:
            logger.error("orchestrator.provider.error error={}", exc)
            decision = TerminationDecision.STOP_ERROR
            state.error = str(exc)
        except StreamClosedError as exc:
            logger.warning("orchestrator.stream.closed error={}", exc)
            decision = TerminationDecision.STOP_ERROR
            state.error = str(exc)
        except ConversationError as exc:
            logger.exception("orchestrator.conversation.error")
            decision = TerminationDecision.STOP_ERROR
            state.error = f"conversation_error: {exc!s}"

        await self._terminate(session, emitter, state, decision)
        logger.info(
            "orchestrator.run.finish decision={} iterations={} tokens={}",
            decision.value,
            state.iterations,
            session.budget.state.cumulative_tokens,
        )
        return RunOutcome(
            session_id=session.session_id,
            decision=decision,
            text=state.text,
            budget=session.budget.state,
            iterations=state.iterations,
            invocations=list(session.invocations),
            error=state.error,
            cancelled=state.cancelled,
        )

    async def _open_session(self, request: ChatRequest) -> ConversationSession:
        turns: list[ConversationTurn] = []
        session_id = request.session_id or new_session_id()
        if request.session_id and self._history is not None:
            turns = await self._history.load_history(request.session_id)
        return ConversationSession(
            session_id=session_id,
            agent_id=request.agent_id,
            conversation=Conversation(turns),
            budget=BudgetTracker(self._context_limit, threshold=self._context_threshold),
        )

    async def _abort_on_history(self, request: ChatRequest, emitter: EventEmitter, exc: Exception) -> RunOutcome:
        session_id = request.session_id or ""
        bind_session(session_id or "-")
        logger.opt(exception=exc).error("history.load.error")
        error = f"history_error: {exc!s}"
        try:
            await emitter.emit(ErrorEvent(error))
        except StreamClosedError:
            logger.warning("orchestrator.terminal.write.error error={}", error)
        return RunOutcome(
            session_id=session_id,
            decision=TerminationDecision.STOP_ERROR,
            text="",
            budget=BudgetState(),
            iterations=0,
            invocations=[],
            error=error,
        )

    async def _loop(
        self,
        session: ConversationSession,
        emitter: EventEmitter,
        dispatcher: ToolDispatcher,
        state: _RunState,
        is_cancelled: CancelProbe | None,
    ) -> TerminationDecision:
        while True:
            if is_cancelled is not None and await is_cancelled():
                state.cancelled = True
                return TerminationDecision.STOP_ERROR

            state.iterations += 1
            logger.info("orchestrator.step iteration={} turns={}", state.iterations, len(session.conversation))
            response = await self._call_model(session, emitter, state)
            session.conversation.append_assistant(response.text, response.tool_calls)

            try:
                budget = session.budget.accumulate(response.usage)
            except ValueError as exc:
                raise ProviderCommunicationError(f"invalid_usage: {exc!s}") from exc
            await emitter.emit(
                BudgetUpdate(
                    input_tokens=budget.input_tokens,
                    output_tokens=budget.output_tokens,
                    total_tokens=budget.cumulative_tokens,
                    context_percentage=session.budget.percentage * 100,
                    iteration=state.iterations,
                )
            )

            decision = decide(response, session.budget)
            logger.info(
                "orchestrator.decision iteration={} decision={} stop_reason={} tool_calls={}",
                state.iterations,
                decision.value,
                response.stop_reason.value,
                len(response.tool_calls),
            )
            if decision.is_stop:
                return decision
            if not response.tool_calls:
                return TerminationDecision.STOP_NATURAL

            outcome = await dispatcher.dispatch(response.tool_calls)
            for invocation in outcome.invocations:
                session.conversation.append_tool_result(
                    invocation.id,
                    invocation.result_content(),
                    tool_name=invocation.name,
                    is_error=not invocation.success,
                )
                session.invocations.append(invocation)
            state.dispatched = True
            if outcome.cancelled:
                state.cancelled = True
                return TerminationDecision.STOP_ERROR

    async def _call_model(
        self,
        session: ConversationSession,
        emitter: EventEmitter,
        state: _RunState,
    ) -> ModelResponse:
        request = ModelRequest(
            system_prompt=self._system_prompt,
            messages=session.conversation.to_messages(),
            tools=self._registry.schemas(),
            max_tokens=self._max_tokens,
        )
        response: ModelResponse | None = None
        streamed: list[str] = []
        try:
            async for event in self._provider.stream(request):
                if isinstance(event, TextChunk):
                    if not event.delta:
                        continue
                    streamed.append(event.delta)
                    state.text_parts.append(event.delta)
                    if state.dispatched:
                        state.text_after_tools = True
                    await emitter.emit(TextDelta(event.delta))
                elif isinstance(event, ModelResponse):
                    response = event
        except (ProviderCommunicationError, StreamClosedError):
            raise
        except Exception as exc:
            logger.exception("model.call.error")
            raise ProviderCommunicationError(f"model_call_error: {exc!s}") from exc

        if response is None:
            raise ProviderCommunicationError("model_call_error: stream ended without a final response")
        if streamed and response.text != "".join(streamed):
            # The stored turn must match what the caller saw.
            response = replace(response, text="".join(streamed))
        tool_calls = unique_call_ids(response.tool_calls)
        if tool_calls != response.tool_calls:
            logger.warning("model.tool_calls.duplicate_ids ids={}", [call.id for call in response.tool_calls])
            response = replace(response, tool_calls=tool_calls)
        return response

    async def _inject_fallback_summary(
        self,
        session: ConversationSession,
        emitter: EventEmitter,
        state: _RunState,
    ) -> None:
        if not self._fallback_summary or not session.invocations or state.text_after_tools:
            return
        summary = build_job_summary(session.invocations)
        if summary is None:
            return
        logger.info("orchestrator.fallback_summary invocations={}", len(session.invocations))
        text = f"\n\n{summary}" if state.text.strip() else summary
        state.text_parts.append(text)
        session.conversation.extend_last_assistant(text)
        await emitter.emit(TextDelta(text))

    async def _terminate(
        self,
        session: ConversationSession,
        emitter: EventEmitter,
        state: _RunState,
        decision: TerminationDecision,
    ) -> None:
        session.conversation.close_pending(PENDING_REASONS[decision])
        persisted = await self._persist(session, state)

        if emitter.failed or state.cancelled:
            return
        try:
            if decision is TerminationDecision.STOP_ERROR or not persisted:
                await emitter.emit(ErrorEvent(state.error or "run aborted"))
            else:
                await emitter.emit(Completion(session.session_id, decision.value, state.text))
        except StreamClosedError as exc:
            logger.warning("orchestrator.terminal.write.error error={}", exc)
            state.error = state.error or str(exc)

    async def _persist(self, session: ConversationSession, state: _RunState) -> bool:
        if self._history is None:
            return True
        turns = session.conversation.new_turns()
        try:
            await self._history.append_turns(session.session_id, turns)
        except Exception as exc:
            logger.exception("history.append.error turns={}", len(turns))
            state.error = state.error or f"history_error: {exc!s}"
            return False
        logger.info("history.append turns={}", len(turns))
        return True
