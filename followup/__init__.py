"""
Outbound calling adapters for scheduled outreach
"""

from .outbound_caller import (
    CallVariables,
    ElevenLabsOutboundCaller,
    MockOutboundCaller,
    OutboundCaller,
    OutboundCallResult,
)

__all__ = [
    "CallVariables",
    "ElevenLabsOutboundCaller",
    "MockOutboundCaller",
    "OutboundCaller",
    "OutboundCallResult",
]
