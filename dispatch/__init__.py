#Expose the high-level pipeline pieces:
#Pending-offer book (the accept / reject / expiry race)
#Dispatcher orchestrator (offer -> fallback -> simulation)
#Practice offers for idle logged-in drivers
#DispatchSystem (everything wired together, the "one call" entry point)

from .dispatcher import Dispatcher
from .offers import OfferBook, OfferOutcome, PendingOffer
from .policy import DispatchPolicy, default_dispatch_policy
from .practice_offers import PracticeOfferStream
from .push import FanoutPushService, PushService
from .system import DRIVER_STATUS_MAP, DispatchSystem

__all__ = [
    "Dispatcher",
    "OfferBook",
    "OfferOutcome",
    "PendingOffer",
    "DispatchPolicy",
    "default_dispatch_policy",
    "PracticeOfferStream",
    "FanoutPushService",
    "PushService",
    "DRIVER_STATUS_MAP",
    "DispatchSystem",
]
