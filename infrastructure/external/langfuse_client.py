"""
Langfuse client adapter for the application.
Records one span per conversational turn when Langfuse keys are configured.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from langfuse import Langfuse

from config.app_config import AppConfig, get_config
from utils.logging_config import get_logger


class TurnTrace:
    """
    Collects turn events into a Langfuse span.
    Every method is safe to call when tracing is unavailable.
    """

    def __init__(self, span: Any = None):
        self.logger = get_logger(__name__)
        self.span = span
        self.text_length = 0
        self.tools: list = []
        self.tool_failures = 0
        self.outcome: Optional[str] = None
        self.error: Optional[str] = None

    def record(self, event: Any):
        kind = event.type.value
        if kind == "content":
            self.text_length += len(event.data)
        elif kind == "tool_call":
            self.tools.append(event.data["name"])
        elif kind == "tool_error":
            self.tool_failures += 1
        elif kind in ("complete", "error"):
            self.outcome = kind
            if kind == "error":
                self.error = event.data["error"]

    def summary(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome or "cancelled",
            "tools": self.tools,
            "tool_failures": self.tool_failures,
            "text_length": self.text_length,
        }

    def finish(self):
        if self.span is None:
            return
        try:
            if self.error:
                self.span.update(output=self.summary(), level="ERROR", status_message=self.error)
            else:
                self.span.update(output=self.summary())
            self.span.end()
        except Exception as e:
            self.logger.warning(f"Failed to close Langfuse span: {e}")


class LangfuseClient:
    """
    Adapter for Langfuse observability.
    Provides centralized access to Langfuse services.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self._client = None

    def get_client(self) -> Optional[Langfuse]:
        """
        Get configured Langfuse client

        Returns:
            Optional[Langfuse]: Configured client or None if not available
        """
        if self._client is None:
            try:
                langfuse_config = self.config.get_langfuse_config()

                # Check if keys are available
                if not langfuse_config["secret_key"] or not langfuse_config["public_key"]:
                    self.logger.debug("Langfuse keys not configured, skipping initialization")
                    return None

                self._client = Langfuse(
                    secret_key=langfuse_config["secret_key"],
                    public_key=langfuse_config["public_key"],
                    host=langfuse_config["host"]
                )

                self.logger.info("Langfuse client initialized successfully")

            except Exception as e:
                self.logger.warning(f"Failed to initialize Langfuse client: {e}")
                return None

        return self._client

    @contextmanager
    def trace_turn(self, thread_id: str, user_id: Optional[str] = None) -> Iterator[TurnTrace]:
        """
        Context manager spanning one conversational turn

        Args:
            thread_id: Thread the turn runs on (used as the Langfuse session)
            user_id: Signed-in user, if known

        Yields:
            TurnTrace: Event recorder; a no-op recorder when Langfuse is off
        """
        span = None
        client = self.get_client()
        if client is not None:
            try:
                span = client.start_span(name="assistant-turn", metadata={"thread_id": thread_id})
                span.update_trace(session_id=thread_id, user_id=user_id)
            except Exception as e:
                self.logger.warning(f"Failed to start Langfuse span: {e}")
                span = None

        trace = TurnTrace(span)
        try:
            yield trace
        finally:
            trace.finish()

    def flush(self):
        client = self._client
        if client is None:
            return
        try:
            client.flush()
        except Exception as e:
            self.logger.warning(f"Failed to flush Langfuse events: {e}")


def create_tracer(config: Optional[AppConfig] = None) -> Optional[LangfuseClient]:
    """Langfuse tracer, or None when tracing is disabled or unconfigured"""
    config = config or get_config()
    if not config.logging.enable_langfuse_tracing:
        return None

    tracer = LangfuseClient(config)
    return tracer if tracer.get_client() is not None else None
