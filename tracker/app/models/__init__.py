"""
Pydantic models for the protocol tracker.
"""

from tracker.app.models.identity import Identity, RequestContext
from tracker.app.models.protocol import ProtocolStatus, PROTOCOL_STATUSES

__all__ = ["Identity", "RequestContext", "ProtocolStatus", "PROTOCOL_STATUSES"]
