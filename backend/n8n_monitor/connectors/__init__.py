"""Remote n8n instance connectors."""

from n8n_monitor.connectors.base import ConnectorError, DecodeError, RemoteAPIError, TransportError
from n8n_monitor.connectors.n8n import N8nClient

__all__ = ["ConnectorError", "DecodeError", "N8nClient", "RemoteAPIError", "TransportError"]
