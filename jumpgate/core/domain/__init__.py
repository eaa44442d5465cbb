"""
Domain models for mediated sessions.
"""

from .session import (
    Principal, Session, GlobalRequest, split_target,
    SESSION_CHANNEL, DIRECT_TCPIP_CHANNEL, DIRECT_STREAMLOCAL_CHANNEL,
    TCPIP_FORWARD_REQUEST, STREAMLOCAL_FORWARD_REQUEST,
)
from .streams import EventStream

__all__ = [
    "Principal",
    "Session",
    "GlobalRequest",
    "split_target",
    "EventStream",
    "SESSION_CHANNEL",
    "DIRECT_TCPIP_CHANNEL",
    "DIRECT_STREAMLOCAL_CHANNEL",
    "TCPIP_FORWARD_REQUEST",
    "STREAMLOCAL_FORWARD_REQUEST",
]
