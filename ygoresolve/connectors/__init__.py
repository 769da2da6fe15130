"""
Source connectors.

One connector per backing source, each resolving whatever it can for
the searches a pipeline step hands it.
"""

from ygoresolve.connectors.base import ResolveResult, SourceConnector
from ygoresolve.connectors.bot_db import BotDBConnector
from ygoresolve.connectors.konami_db import KonamiDBConnector
from ygoresolve.connectors.tcgplayer import TCGPlayerConnector
from ygoresolve.connectors.ygorg import YGOrgConnector
from ygoresolve.connectors.yugipedia import YugipediaConnector

__all__ = [
    "BotDBConnector",
    "KonamiDBConnector",
    "ResolveResult",
    "SourceConnector",
    "TCGPlayerConnector",
    "YGOrgConnector",
    "YugipediaConnector",
]
