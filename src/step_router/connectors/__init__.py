"""Connector facade and built-in connectors."""

from .facade import BoundConnectors, ConnectorFacade
from .fetch import FetchConnector

__all__ = ["ConnectorFacade", "BoundConnectors", "FetchConnector"]
