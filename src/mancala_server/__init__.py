"""
Mancala game server.

This package provides a single-game Mancala server speaking a line-based
text protocol: clients connect, register a name and take turns sowing
pebbles until some player's row of pits is empty. A simple client and a
random-move agent are included for play and testing.
"""

from mancala_server.models import Board, Session, SessionState, SessionRegistry
from mancala_server.game import MancalaGame
from mancala_server.server import MancalaServer
from mancala_server.client import MancalaClient

__all__ = [
    "Board", "Session", "SessionState", "SessionRegistry",
    "MancalaGame", "MancalaServer", "MancalaClient"
]
