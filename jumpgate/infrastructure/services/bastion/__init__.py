"""
SSH connection mediation: inbound gate, outbound dialer, channel relays
and the listener that ties them together.
"""

from .gate import ChannelOffer, GateServer
from .outbound import TargetClient, dial_target
from .relay import ChannelRelay, RelayGroup
from .supervisor import ConnectionSupervisor
from .server import BastionServer

__all__ = [
    "ChannelOffer",
    "GateServer",
    "TargetClient",
    "dial_target",
    "ChannelRelay",
    "RelayGroup",
    "ConnectionSupervisor",
    "BastionServer",
]
