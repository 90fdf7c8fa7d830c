"""Base class for LangGraph graphs to share common behavior."""

from __future__ import annotations

from abc import ABC, abstractmethod
from langgraph.graph import StateGraph

from pacematch.tools.store import Store, get_store
from pacematch.utils.errors import GraphExecutionError
from pacematch.utils.logging_config import logger


def with_state(state: dict, **updates) -> dict:
    """Return a new state dict with updates applied."""

    return {**state, **updates}


class BaseGraph(ABC):
    """Abstract base class for all LangGraph implementations.

    Centralizes logging and store access and provides a consistent compile
    pattern so graph subclasses focus on node logic rather than boilerplate.
    """

    def __init__(self, timeout: int = 30, store: Store | None = None):
        self.timeout = timeout
        self.logger = logger
        self._store = store

    @property
    def store(self) -> Store:
        if self._store is None:
            self._store = get_store()
        return self._store

    @abstractmethod
    def build_graph(self) -> StateGraph:
        """Build and return the StateGraph instance."""

    def _log_node_execution(self, node_name: str, state: dict) -> None:
        """Log node execution start with minimal state context."""

        self.logger.debug("Executing node: %s", node_name)

    def _log_node_error(self, node_name: str, error: Exception) -> None:
        """Log node execution error without leaking user data."""

        self.logger.error("Node %s failed: %s", node_name, str(error))

    def compile(self):
        """Build and compile the graph for execution."""

        try:
            graph = self.build_graph()
            return graph.compile()
        except Exception as exc:
            self.logger.error("Failed to compile %s: %s", type(self).__name__, str(exc))
            raise GraphExecutionError(str(exc)) from exc
