"""
Core module containing the session domain, error taxonomy and the
interfaces the mediation engine depends on.
"""

from .interfaces.lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .interfaces.credentials import ICredentialStore
from .domain.session import Principal, Session, GlobalRequest
from .domain.streams import EventStream

__all__ = [
    "IStartable",
    "IStoppable",
    "IHealthCheckable",
    "IComponent",
    "ICredentialStore",
    "Principal",
    "Session",
    "GlobalRequest",
    "EventStream",
]
