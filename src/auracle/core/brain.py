"""The agent orchestrator: perceive, compose, then think/act/observe until done."""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from loguru import logger

from auracle.config import (
    AGENT_MODES,
    DEFAULT_OLLAMA_ENDPOINT,
    ConfigManager,
    CustomAgent,
    ModelSettings,
    Settings,
)
from auracle.core.loop_detector import LoopDetector
from auracle.core.retry import RetryPolicy, retry_async
from auracle.core.tool_calls import execute_tool_calls
from auracle.core.types import DEFAULT_SESSION_ID, Request, Response, Session, Snapshot, StopReason, Thread
from auracle.errors import (
    CustomAgentNotFoundError,
    GenerationError,
    InvalidAgentModeError,
    ModelNotConfiguredError,
    ModelPullError,
    PermanentError,
    UnknownProviderError,
)
from auracle.logging_utils import bind_session, unbind_session
from auracle.memory import MemoryStore
from auracle.prompt import Intent, ModelRecommender, PromptSystem, Recommendation, Recommender
from auracle.providers import (
    ModelDiscovery,
    Provider,
    ProviderCapability,
    ProviderFactories,
    build_provider,
    default_provider_factories,
    discovery_settings,
)
from auracle.status import LogStatusReporter, StatusReporter
from auracle.system import SystemMonitor
from auracle.tools import CORE_TOOLS, SecurityGuard, ToolRegistry, register_core_tools

IGNORED_RESPONSE = "(ignored empty/invalid prompt)"
LOOP_HALT_SUFFIX = "\n\n(Stopped: Loop detected)"
TOOL_LOOP_HALT_PREFIX = "Agent halted due to repetitive tool output: "
TURN_LIMIT_RESPONSE = "Agent loop limit reached. Some tasks may not have completed."
PREFERRED_MODEL_MARKERS = ("llama", "gpt-4o", "phi-3")
RESPONSE_PREVIEW_CHARS = 100
RESULT_PREVIEW_CHARS = 80


def _preview(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def error_continuation(error: BaseException) -> str:
    return (
        f"\n\nTool execution failed: {error}\n\n"
        "Continue executing the remaining steps. Output the next tool call.\nAssistant:"
    )


def success_continuation(output: str, original_request: str) -> str:
    return (
        f"\n\nTool output:\n{output}\n\nOriginal request: {original_request}\n\n"
        "If there are more steps to complete, output the next tool call now. "
        "Only provide a summary when ALL tasks are done.\nAssistant:"
    )


def fallback_prompt(request: Request, snapshot: Snapshot, tool_defs: str, recall: list[str]) -> str:
    return (
        f"System Context:\n{chr(10).join(recall)}\n\n"
        f"System CWD: {snapshot.working_dir}\n"
        f"Available Tools (JSON-RPC 2.0 Style):\n{tool_defs}\n\n"
        f"User Request (Thread ID: {request.id}):\n{request.content}"
    )


class Brain:
    """Processes requests against the active model provider, running tool calls it emits."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        config_manager: ConfigManager | None = None,
        provider_factories: ProviderFactories | None = None,
        tools: ToolRegistry | None = None,
        memory: MemoryStore | None = None,
        monitor: SystemMonitor | None = None,
        reporter: StatusReporter | None = None,
        recommender: Recommender | None = None,
        retry_policy: RetryPolicy | None = None,
        autodetect: bool | None = None,
        workspace: Path | None = None,
    ) -> None:
        self._config_manager = config_manager or ConfigManager()
        self._settings = settings or self._config_manager.load()
        self._factories = provider_factories if provider_factories is not None else default_provider_factories()
        self._monitor = monitor or SystemMonitor()
        self._reporter = reporter or LogStatusReporter()
        self._retry_policy = retry_policy or RetryPolicy.from_settings(self._settings.retry)
        self._memory = memory or MemoryStore(
            self._settings.resolve_home(),
            window_size=self._settings.memory.window_size,
            recall_limit=self._settings.memory.recall_limit,
        )
        if tools is None:
            tools = ToolRegistry(SecurityGuard())
            register_core_tools(tools, workspace=workspace or Path.cwd(), monitor=self._monitor)
        self._tools = tools

        self._fixed_recommender = recommender
        self._prompts = PromptSystem(self._settings, self._memory, recommender)
        self._sessions: dict[str, Session] = {}
        self._detector = self._new_detector()
        self._provider: Provider | None = None
        self._autodetect_task: asyncio.Task[ModelDiscovery | None] | None = None
        self._autodetect_thread: threading.Thread | None = None

        self._init_provider()
        if self._settings.autodetect_model if autodetect is None else autodetect:
            self.start_autodetect()

    @property
    def config(self) -> Settings:
        return self._settings

    @property
    def provider(self) -> Provider | None:
        return self._provider

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def memory(self) -> MemoryStore:
        return self._memory

    @property
    def detector(self) -> LoopDetector:
        return self._detector

    @property
    def sessions(self) -> Mapping[str, Session]:
        return MappingProxyType(self._sessions)

    def session(self, session_id: str = DEFAULT_SESSION_ID) -> Session | None:
        return self._sessions.get(session_id)

    def snapshot(self) -> Snapshot:
        return self._monitor.get_snapshot()

    def _new_detector(self) -> LoopDetector:
        agent = self._settings.agent
        return LoopDetector(max_history=agent.loop_history, repeat_threshold=agent.loop_repeat_threshold)

    def _report(self, icon: str, step: str, message: str) -> None:
        try:
            self._reporter.report(icon, step, message)
        except Exception as exc:
            logger.warning("status.report.error step={} error={}", step, exc)

    def _init_provider(self) -> None:
        try:
            provider = build_provider(self._factories, self._settings.model)
        except Exception as exc:
            logger.error("brain.provider.init_failed provider={} error={}", self._settings.model.provider, exc)
            self._provider = None
            return

        self._provider = provider
        logger.info("brain.provider.ready provider={} model={}", provider.name, self._settings.model.name)
        if self._fixed_recommender is None:
            self._prompts.set_recommender(ModelRecommender(provider))

    def _require_provider(self) -> Provider:
        provider = self._provider
        if provider is None:
            raise ModelNotConfiguredError("no AI model configured; run 'auracle use <provider> <model>' to set one up")
        return provider

    async def process(
        self,
        request: Request,
        *,
        session_id: str = DEFAULT_SESSION_ID,
        mode: str | None = None,
    ) -> Response:
        """Handle one request end to end.

        `mode` overrides the configured agent mode for this request only.

        Raises ModelNotConfiguredError, GenerationError once retries run out,
        and InterventionRequiredError when a tool call needs human approval.
        Every other outcome, loop halts and the turn limit included, is a Response.
        """
        if mode is not None and mode not in AGENT_MODES:
            raise InvalidAgentModeError(f"invalid agent mode: {mode} (must be 'vibe', 'sdk', or 'custom')")
        token = bind_session(session_id)
        try:
            return await self._process(request, session_id, mode or self._settings.agent.mode)
        finally:
            unbind_session(token)

    async def _process(self, request: Request, session_id: str, mode: str) -> Response:
        self._report("🧠", "think", "Processing request...")
        if self._provider is None:
            self._report("❌", "error", "No AI model configured")
        provider = self._require_provider()

        session = self._sessions.get(session_id)
        if session is None:
            session = Session(id=session_id)
            self._sessions[session_id] = session

        snapshot = self._perceive()
        tool_defs = self._tools.prompt_definitions(CORE_TOOLS)
        self._report("🔧", "tools", f"Loaded {len(CORE_TOOLS)} core tools")

        self._memory.add_to_window(request.id, request.content, "user_prompt")
        self._report("🧠", "memory", "Analyzing conversation context...")

        intent: Intent | None = None
        recommendations: list[Recommendation] = []
        if self._settings.prompt.enabled:
            self._report("📝", "prompt", "Selecting prompt strategy...")
            built = await self._prompts.build(request.content, snapshot, tool_defs, agent_mode=mode)
            if built.envelope.ignored:
                self._report("⏭️", "skip", "Empty/invalid prompt ignored")
                return Response(content=IGNORED_RESPONSE, stop_reason=StopReason.IGNORED)
            prompt = built.envelope.prompt
            intent = built.envelope.intent
            recommendations = built.recommendations
            self._report("✅", "prompt", f"Strategy: {intent}")
        else:
            self._report("📝", "prompt", "Using fallback prompt builder")
            prompt = fallback_prompt(request, snapshot, tool_defs, self._recall(request.content))

        if mode == "sdk" and ProviderCapability.TOOL_NATIVE in provider.capabilities:
            return await self._delegate(provider, request, prompt)

        return await self._turn_loop(request, session, prompt, intent, recommendations)

    def _perceive(self) -> Snapshot:
        try:
            snapshot = self._monitor.get_snapshot()
        except Exception as exc:
            logger.warning("brain.snapshot.error error={}", exc)
            snapshot = Snapshot()
        self._report("👁️", "perceive", f"CWD: {snapshot.working_dir}")
        return snapshot

    def _recall(self, query: str) -> list[str]:
        try:
            return self._memory.recall(query)
        except Exception as exc:
            logger.warning("brain.recall.error error={}", exc)
            return []

    def _remember(self, key: str, value: str) -> None:
        try:
            self._memory.store(key, value)
        except Exception as exc:
            logger.warning("brain.memory.store_error key={} error={}", key, exc)

    async def _delegate(self, provider: Provider, request: Request, prompt: str) -> Response:
        self._report("🚀", "agent-sdk", "Delegating task to the provider's native agent runtime...")
        try:
            content = await retry_async(lambda: provider.generate(prompt), self._retry_policy)
        except GenerationError as exc:
            self._report("❌", "error", f"SDK agent error: {exc}")
            raise
        self._report("✅", "done", "SDK agent completed task")
        self._remember(request.id, content)
        return Response(content=content, stop_reason=StopReason.DELEGATED)

    async def _generate(self, history: str) -> str:
        def on_retry(attempt: int, exc: Exception, wait: float) -> None:
            self._report("⏳", "retry", f"Retrying thinking... ({exc})")

        async def generate_once() -> str:
            try:
                provider = self._require_provider()
            except ModelNotConfiguredError as exc:
                raise PermanentError(exc) from exc
            return await provider.generate(history)

        try:
            return await retry_async(
                generate_once,
                self._retry_policy,
                on_retry=on_retry,
            )
        except GenerationError as exc:
            self._report("❌", "error", f"Model error: {exc}")
            raise

    async def _turn_loop(
        self,
        request: Request,
        session: Session,
        prompt: str,
        intent: Intent | None,
        recommendations: list[Recommendation],
    ) -> Response:
        self._report("🎨", "agent-vibe", "Executing via internal agent loop...")
        max_turns = self._settings.agent.max_turns
        history = prompt
        self._detector = self._new_detector()

        for turn in range(max_turns):
            self._report("🔄", "loop", f"Turn {turn + 1}/{max_turns}: Thinking...")
            logger.info("brain.turn.start request={} turn={} max={}", request.id, turn + 1, max_turns)

            response = await self._generate(history)

            if self._detector.add_action(response):
                self._report("🛑", "loop-detected", "Agent stuck in a repetitive loop. Halting.")
                return Response(content=response + LOOP_HALT_SUFFIX, stop_reason=StopReason.LOOP_DETECTED)

            self._report("💬", "response", _preview(response, RESPONSE_PREVIEW_CHARS))
            self._report("🔎", "parsing", "Analyzing response for tool calls...")

            execution = await execute_tool_calls(self._tools, response, self._reporter)
            if execution.intervention is not None:
                self._report("⚠️", "intervention", "User approval required")
                raise execution.intervention

            output = execution.output
            if execution.executed and self._detector.add_action(output):
                self._report("🛑", "loop-detected", "Tool results are repetitive. Halting.")
                return Response(content=TOOL_LOOP_HALT_PREFIX + output, stop_reason=StopReason.TOOL_LOOP_DETECTED)

            if not execution.executed:
                self._report("✅", "done", "Task complete")
                session.add_thread(
                    Thread(
                        id=request.id,
                        prompt=request.content,
                        response=response,
                        metadata={
                            "prompt_intent": intent,
                            "recommendations": recommendations,
                            "response_raw_len": len(response),
                        },
                    )
                )
                self._remember(request.id, response)
                logger.info("brain.request.done request={} turns={}", request.id, turn + 1)
                return Response(content=response)

            if execution.error is not None:
                self._report("❌", "tool", f"Tool error: {execution.error}")
                history += error_continuation(execution.error)
            else:
                self._report("✅", "tool", f"Result: {_preview(output, RESULT_PREVIEW_CHARS)}")
                history += success_continuation(output, request.content)

            self._remember(f"{request.id}_step_{turn}", output)

        self._report("⚠️", "limit", "Agent loop limit reached")
        logger.warning("brain.turn.limit request={} max={}", request.id, max_turns)
        return Response(content=TURN_LIMIT_RESPONSE, stop_reason=StopReason.MAX_TURNS)

    def _write_settings(self, change: Callable[[Settings], Settings], *, reload_provider: bool = False) -> Settings:
        with self._config_manager.lock:
            updated = change(self._settings)
            self._config_manager.save(updated)
            self._settings = updated
            self._prompts.update_settings(updated)
            if reload_provider:
                self._init_provider()
        return updated

    def set_model(self, provider: str, name: str) -> None:
        if provider not in self._factories:
            raise UnknownProviderError(f"unknown provider: {provider}")

        def change(settings: Settings) -> Settings:
            model_update: dict[str, Any] = {"provider": provider, "name": name}
            if provider == "ollama" and not settings.model.endpoint:
                model_update["endpoint"] = DEFAULT_OLLAMA_ENDPOINT
            return settings.model_copy(update={"model": settings.model.model_copy(update=model_update)})

        self._write_settings(change, reload_provider=True)
        logger.info("brain.model.set provider={} name={}", provider, name)

    def set_agent_mode(self, mode: str) -> None:
        if mode not in AGENT_MODES:
            raise InvalidAgentModeError(f"invalid agent mode: {mode} (must be 'vibe', 'sdk', or 'custom')")
        self._write_settings(
            lambda settings: settings.model_copy(update={"agent": settings.agent.model_copy(update={"mode": mode})})
        )

    def register_custom_agent(self, agent: CustomAgent) -> None:
        def change(settings: Settings) -> Settings:
            agents = list(settings.agent.custom_agents)
            for idx, existing in enumerate(agents):
                if existing.name == agent.name:
                    agents[idx] = agent
                    break
            else:
                agents.append(agent)
            return settings.model_copy(
                update={"agent": settings.agent.model_copy(update={"custom_agents": agents})}
            )

        self._write_settings(change)

    def custom_agents(self) -> list[CustomAgent]:
        return list(self._settings.agent.custom_agents)

    def set_active_custom_agent(self, name: str) -> None:
        if not any(agent.name == name for agent in self._settings.agent.custom_agents):
            raise CustomAgentNotFoundError(f"custom agent '{name}' not found")
        self._write_settings(
            lambda settings: settings.model_copy(
                update={"agent": settings.agent.model_copy(update={"active_custom": name, "mode": "custom"})}
            )
        )

    def update_config(self, settings: Settings) -> None:
        self._write_settings(lambda _: settings, reload_provider=True)

    async def pull_model(self, name: str) -> None:
        """Download `name` through the local Ollama daemon at the configured endpoint."""
        provider = build_provider(
            self._factories,
            ModelSettings(provider="ollama", name=name, endpoint=self._settings.model.endpoint),
        )
        pull = getattr(provider, "pull_model", None)
        if not callable(pull):
            raise ModelPullError(f"provider '{provider.name}' does not support pulling models")
        self._report("⬇️", "pull", f"Pulling {name}...")
        await pull(name)
        logger.info("brain.model.pulled name={}", name)

    def store_state(self, id: str, value: Any) -> None:  # noqa: A002
        self._memory.save_state(id, value)

    def recall_state(self, id: str, default: Any = None) -> Any:  # noqa: A002
        return self._memory.load_state(id, default)

    def clear_state(self, id: str) -> None:  # noqa: A002
        self._memory.clear_state(id)

    async def discover_models(self) -> list[ModelDiscovery]:
        """List models from every provider that can be reached; unreachable ones are skipped."""
        discoveries: list[ModelDiscovery] = []
        for name, factory in self._factories.items():
            model_settings = discovery_settings(name, self._settings.model)
            if model_settings is None:
                continue
            try:
                models = await factory(model_settings).list_models()
            except Exception as exc:
                logger.debug("brain.discover.skip provider={} error={}", name, exc)
                continue
            discoveries.extend(ModelDiscovery(name=model, provider=name) for model in models)
        return discoveries

    async def autodetect_best_model(self) -> ModelDiscovery | None:
        """Replace the default model with one that is actually available, if any."""
        if not self._settings.uses_default_model():
            return None

        discoveries = await self.discover_models()
        if not discoveries:
            return None

        chosen = discoveries[0]
        for discovery in discoveries:
            lowered = discovery.name.lower()
            if any(marker in lowered for marker in PREFERRED_MODEL_MARKERS):
                chosen = discovery
                break

        self.set_model(chosen.provider, chosen.name)
        self._report("✨", "model", f"Auto-selected {chosen.provider}:{chosen.name}")
        return chosen

    def start_autodetect(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            self._autodetect_task = loop.create_task(self._autodetect_quietly())
            return

        self._autodetect_thread = threading.Thread(
            target=lambda: asyncio.run(self._autodetect_quietly()),
            name="auracle-autodetect",
            daemon=True,
        )
        self._autodetect_thread.start()

    async def _autodetect_quietly(self) -> ModelDiscovery | None:
        try:
            return await self.autodetect_best_model()
        except Exception:
            logger.exception("brain.autodetect.error")
            return None

    async def shutdown(self) -> None:
        task = self._autodetect_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        close = getattr(self._provider, "close", None)
        if callable(close):
            result = close()
            if inspect.isawaitable(result):
                await result
        logger.info("brain.shutdown")
