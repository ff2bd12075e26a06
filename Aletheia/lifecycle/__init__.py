from Aletheia.lifecycle.locks import KeyedLock
from Aletheia.lifecycle.status import (
    KeyRecord,
    KeyStatus,
    StatusLifecycle,
    StatusTransition,
    StatusUpdate,
)

__all__ = [
    "KeyRecord",
    "KeyStatus",
    "KeyedLock",
    "StatusLifecycle",
    "StatusTransition",
    "StatusUpdate",
]
