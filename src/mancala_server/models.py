import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from mancala_server.common import NPITS
from mancala_server.protocol import LineDecoder


class SessionState(Enum):
    """Registration state of a connected session"""
    UNREGISTERED = "UNREGISTERED"
    REGISTERED = "REGISTERED"


@dataclass
class Board:
    """
    One player's row: regular pits 0..NPITS-1 followed by the end pit at NPITS.
    """
    pits: np.ndarray = field(default_factory=lambda: np.zeros(NPITS + 1, dtype=int))

    @classmethod
    def filled(cls, stock: int) -> 'Board':
        """Create a board whose regular pits each hold `stock` pebbles"""
        board = cls()
        board.pits[:NPITS] = stock
        return board

    @property
    def end_pit(self) -> int:
        return int(self.pits[NPITS])

    def regular_total(self) -> int:
        return int(np.sum(self.pits[:NPITS]))

    def total(self) -> int:
        return int(np.sum(self.pits))

    def row_is_empty(self) -> bool:
        """True when every regular pit is zero (the end pit does not count)"""
        return not self.pits[:NPITS].any()

    def take(self, pit: int) -> int:
        """Empty a pit and return how many pebbles it held"""
        pebbles = int(self.pits[pit])
        self.pits[pit] = 0
        return pebbles

    def drop(self, pit: int):
        self.pits[pit] += 1

    def render(self, name: str) -> str:
        cells = " ".join(f"[{i}]{int(self.pits[i])}" for i in range(NPITS))
        return f"{name}: {cells} [end pit]{self.end_pit}"

    def to_list(self) -> List[int]:
        return [int(p) for p in self.pits]


@dataclass
class Session:
    """A live connection together with its board and registration state"""
    session_id: int
    conn: Any
    board: Board
    address: Optional[Tuple[str, int]] = None
    name: Optional[str] = None
    state: SessionState = SessionState.UNREGISTERED
    prompted: bool = False
    decoder: LineDecoder = field(default_factory=LineDecoder)

    @property
    def is_registered(self) -> bool:
        return self.state == SessionState.REGISTERED

    def register(self, name: str):
        if self.is_registered:
            raise ValueError(f"Session {self.session_id} is already registered as {self.name}")
        self.name = name
        self.state = SessionState.REGISTERED

    def label(self) -> str:
        """Name for log lines; unregistered sessions are identified by id"""
        return self.name if self.is_registered else f"connection ({self.session_id})"


class SessionRegistry:
    """
    Ordered collection of live sessions, circular for turn purposes.

    Sessions are stored by id; the order list keeps the most recently
    created session first. The current mover is kept as an id so that
    removing a session never leaves a dangling reference.
    """

    def __init__(self):
        self._sessions: Dict[int, Session] = {}
        self._order: List[int] = []
        self._ids = itertools.count(1)
        self.mover_id: Optional[int] = None

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Session]:
        # Iterate over a snapshot so callers may remove sessions while looping
        return iter([self._sessions[sid] for sid in self._order])

    def __contains__(self, session_id: int) -> bool:
        return session_id in self._sessions

    def get(self, session_id: int) -> Optional[Session]:
        return self._sessions.get(session_id)

    def create(self, conn: Any, board: Board, address: Optional[Tuple[str, int]] = None) -> Session:
        """Create a session and link it in at the front of the registry"""
        session = Session(session_id=next(self._ids), conn=conn, board=board, address=address)
        self._sessions[session.session_id] = session
        self._order.insert(0, session.session_id)
        return session

    def remove(self, session_id: int) -> Session:
        """
        Unlink a session. If it was the mover, the turn passes to the next
        registered session after it, or to nobody.
        """
        session = self._sessions[session_id]
        if self.mover_id == session_id:
            successor = self.next_registered_after(session_id)
            self.set_mover(successor.session_id if successor else None)
        self._order.remove(session_id)
        del self._sessions[session_id]
        return session

    def registered(self) -> List[Session]:
        return [s for s in self if s.is_registered]

    def first_registered(self) -> Optional[Session]:
        for session in self:
            if session.is_registered:
                return session
        return None

    def name_in_use(self, name: str) -> bool:
        return any(s.name == name for s in self if s.is_registered)

    def next_after(self, session_id: int) -> Session:
        """Session following `session_id` in circular order, whatever its state"""
        index = self._order.index(session_id)
        return self._sessions[self._order[(index + 1) % len(self._order)]]

    def next_registered_after(self, session_id: int) -> Optional[Session]:
        """
        First registered session after `session_id` in circular order,
        excluding `session_id` itself.
        """
        index = self._order.index(session_id)
        for step in range(1, len(self._order)):
            candidate = self._sessions[self._order[(index + step) % len(self._order)]]
            if candidate.is_registered:
                return candidate
        return None

    @property
    def mover(self) -> Optional[Session]:
        if self.mover_id is None:
            return None
        return self._sessions.get(self.mover_id)

    def set_mover(self, session_id: Optional[int]):
        """Hand the turn to a session; the new mover has not been prompted yet"""
        self.mover_id = session_id
        if session_id is not None:
            self._sessions[session_id].prompted = False

    def total_pebbles(self) -> int:
        return sum(s.board.total() for s in self)
