from ygoresolve.clients.rate_limiter import RateLimiter
from ygoresolve.clients.tcgplayer import TCGPlayerClient
from ygoresolve.clients.ygorg import RevisionedPayload, YGOrgClient
from ygoresolve.clients.yugipedia import YugipediaClient

__all__ = [
    "RateLimiter",
    "RevisionedPayload",
    "TCGPlayerClient",
    "YGOrgClient",
    "YugipediaClient",
]
