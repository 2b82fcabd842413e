"""Connector facade: the single seam between steps and external services.

A connector is any object whose public methods are operations, e.g.
``FetchConnector.request``. The facade resolves ``(connector_id, operation)``,
awaits the call when it returns a coroutine, and wraps every failure in
``ConnectorError``. There is no retry, pooling or caching here; steps that
need retries keep their own counters in the task document.
"""

import inspect
import logging
from typing import Any, Dict, Optional

from ..core.document import Document, set_path
from ..errors import ConnectorError

logger = logging.getLogger(__name__)


class ConnectorFacade:
    """Registry of connectors and the ``invoke`` entry point."""

    def __init__(self, connectors: Optional[Dict[str, Any]] = None):
        self._connectors: Dict[str, Any] = {}
        for connector_id, connector in (connectors or {}).items():
            self.register(connector_id, connector)

    def register(self, connector_id: str, connector: Any) -> None:
        """Register a connector under an id (replaces any existing one)."""
        if not connector_id or connector_id.startswith("_"):
            raise ValueError(f"Invalid connector id: {connector_id!r}")
        self._connectors[connector_id] = connector

    def get(self, connector_id: str) -> Any:
        connector = self._connectors.get(connector_id)
        if connector is None:
            raise ConnectorError(connector_id, "*", "connector not registered")
        return connector

    @property
    def connector_ids(self) -> list:
        return sorted(self._connectors)

    async def invoke(
        self,
        connector_id: str,
        operation: str,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Call ``operation`` on a connector with keyword ``arguments``.

        Raises:
            ConnectorError: unknown connector/operation, or any failure of the call.
        """
        connector = self.get(connector_id)
        if operation.startswith("_"):
            raise ConnectorError(connector_id, operation, "private operations are not callable")
        method = getattr(connector, operation, None)
        if method is None or not callable(method):
            raise ConnectorError(connector_id, operation, "unknown operation")

        logger.debug(f"Invoking connector {connector_id}.{operation}")
        try:
            result = method(**(arguments or {}))
            if inspect.isawaitable(result):
                result = await result
        except ConnectorError:
            raise
        except Exception as e:
            logger.warning(f"Connector {connector_id}.{operation} raised {type(e).__name__}: {e}")
            raise ConnectorError(connector_id, operation, f"{type(e).__name__}: {e}") from e
        return result

    def bind(self, document: Document) -> "BoundConnectors":
        """Handler-facing view that can write results into ``document``."""
        return BoundConnectors(self, document)


class BoundConnectors:
    """Connectors as seen by one step execution.

    ``await connectors.invoke("github", "request", {...}, into="release.latest")``
    or ``await connectors.github.request(url=..., into="release.latest")``.
    """

    def __init__(self, facade: ConnectorFacade, document: Document):
        self._facade = facade
        self._document = document

    async def invoke(
        self,
        connector_id: str,
        operation: str,
        arguments: Optional[Dict[str, Any]] = None,
        into: Optional[str] = None,
    ) -> Any:
        result = await self._facade.invoke(connector_id, operation, arguments)
        if into:
            set_path(self._document, into, result)
        return result

    def __getattr__(self, connector_id: str) -> "_ConnectorProxy":
        if connector_id.startswith("_"):
            raise AttributeError(connector_id)
        return _ConnectorProxy(self, connector_id)


class _ConnectorProxy:
    """Attribute-style access to one connector's operations."""

    def __init__(self, bound: BoundConnectors, connector_id: str):
        self._bound = bound
        self._connector_id = connector_id

    def __getattr__(self, operation: str):
        if operation.startswith("_"):
            raise AttributeError(operation)

        async def call(into: Optional[str] = None, **arguments: Any) -> Any:
            return await self._bound.invoke(self._connector_id, operation, arguments, into=into)

        call.__name__ = operation
        return call
