"""
Process-wide DispatchSystem used by the views.

Built lazily on first request (policies from the environment, a
ChannelsPushService for the push channel). Tests swap in their own system
with set_dispatch_system().
"""

import logging
import threading
from typing import Optional

from dispatch.system import DispatchSystem

from backend.realtime.broadcast import ChannelsPushService

logger = logging.getLogger(__name__)

_system: Optional[DispatchSystem] = None
_lock = threading.Lock()


def get_dispatch_system() -> DispatchSystem:
    global _system
    with _lock:
        if _system is None:
            _system = DispatchSystem(push_service=ChannelsPushService())
            logger.info("Dispatch system started with %d drivers", len(_system.registry))
        return _system


def set_dispatch_system(system: Optional[DispatchSystem]) -> Optional[DispatchSystem]:
    """
    Replace the current system (None resets to lazy creation). The previous
    one is shut down and returned.
    """
    global _system
    with _lock:
        previous, _system = _system, system
    if previous is not None and previous is not system:
        previous.shutdown()
    return previous
