"""
Chain client adapters

Provides:
  - BaseChainAdapter / StatusEvent / StatusKind / DispatchFailure   (adapter.py)
  - SubstrateChainAdapter, loaded on first access                 (substrate.py)
"""

from .adapter import (
    BaseChainAdapter,
    DispatchFailure,
    StatusEvent,
    StatusKind,
    StatusSubscription,
)


def __getattr__(name):
    if name == "SubstrateChainAdapter":
        from .substrate import SubstrateChainAdapter
        return SubstrateChainAdapter
    raise AttributeError(f"module 'govproxy.chain' has no attribute {name!r}")


__all__ = [
    "BaseChainAdapter",
    "DispatchFailure",
    "StatusEvent",
    "StatusKind",
    "StatusSubscription",
    "SubstrateChainAdapter",
]
