import logging
from typing import Any, List, Optional, Tuple

from mancala_server.broadcaster import Broadcaster
from mancala_server.common import MAX_MESSAGE, MAX_NAME, NPEBBLES, NPITS
from mancala_server.models import Board, Session, SessionRegistry
from mancala_server.protocol import (
    DUPLICATE_NAME, EMPTY_NAME, GAME_OVER, INVALID_MOVE, NOT_YOUR_MOVE,
    WELCOME, YOUR_MOVE, parse_move
)

# Operator console: joins, leaves, moves and results
game_logger = logging.getLogger("GameLog")


class MancalaGame:
    """
    Turn engine for a single shared Mancala game.

    Owns the session registry and interprets decoded lines from each
    session: the first line of an unregistered session is its name, every
    later line is a pit index. All methods run to completion without
    blocking on anything but socket sends.
    """

    def __init__(self):
        self.registry = SessionRegistry()
        self.broadcaster = Broadcaster(self.registry)

    def compute_average_pebbles(self) -> int:
        """
        Stock for a newcomer's regular pits: the rounded-up average over all
        regular pits currently on the table, or NPEBBLES for the first session.

        Must be called before the new session is linked in.
        """
        if len(self.registry) == 0:
            return NPEBBLES
        total = sum(s.board.regular_total() for s in self.registry)
        if total == 0:
            return 1
        slots = len(self.registry) * NPITS
        return -(-total // slots)

    def add_session(self, conn: Any, address: Optional[Tuple[str, int]] = None) -> Session:
        """Admit a new connection: fill its board, link it in front and greet it"""
        board = Board.filled(self.compute_average_pebbles())
        session = self.registry.create(conn, board, address)
        game_logger.info(f"incoming connection ({session.session_id}) from {address}")
        self.broadcaster.send(session, WELCOME)
        return session

    def remove_session(self, session_id: int) -> Optional[Session]:
        """
        Unlink a session after a disconnect or protocol violation.

        Other players are told if the session had registered. The caller
        owns the connection and closes it.
        """
        session = self.registry.get(session_id)
        if session is None:
            return None

        if session.is_registered:
            game_logger.info(f"{session.name} has left the game.")
            self.broadcaster.broadcast_except(f"{session.name} has left the game.", session_id)
        else:
            game_logger.info(f"connection ({session_id}) disconnected.")

        self.registry.remove(session_id)
        self.broadcaster.failed.discard(session_id)
        return session

    def message_limit(self, session: Session) -> int:
        """Longest line accepted from a session in its current state"""
        return MAX_MESSAGE if session.is_registered else MAX_NAME

    def handle_line(self, session: Session, line: str):
        if session.is_registered:
            self.make_move(session, line)
        else:
            self.register(session, line)

    def register(self, session: Session, name: str) -> bool:
        """
        Try to register a session under `name`.

        Returns:
            True if the name was accepted, False if the client must retry
        """
        name = name[:MAX_NAME]
        if not name:
            self.broadcaster.send(session, EMPTY_NAME)
            return False
        if self.registry.name_in_use(name):
            self.broadcaster.send(session, DUPLICATE_NAME)
            return False

        session.register(name)
        game_logger.info(f"{name} has joined the game.")
        self.broadcaster.broadcast(f"{name} has joined the game.")
        self.broadcaster.send_status(session)

        if self.registry.mover is None:
            first = self.registry.first_registered()
            self.registry.set_mover(first.session_id)
        mover = self.registry.mover
        if mover is not session:
            self.broadcaster.send(session, f"Now it's {mover.name}'s turn.")
        return True

    def validate_move(self, session: Session, pit: Optional[int]) -> Tuple[bool, str]:
        """
        Validate a move against the current game state

        Returns:
            Tuple of (is_valid, error_message)
        """
        if self.registry.mover_id != session.session_id:
            return False, NOT_YOUR_MOVE
        if pit is None or not 0 <= pit < NPITS:
            return False, INVALID_MOVE
        if session.board.pits[pit] == 0:
            return False, INVALID_MOVE
        return True, ""

    def make_move(self, session: Session, line: str) -> bool:
        """
        Apply a move line from a session.

        Invalid moves are answered with a retry message and change nothing.

        Returns:
            True if the move was applied
        """
        pit = parse_move(line)
        is_valid, error_msg = self.validate_move(session, pit)
        if not is_valid:
            self.broadcaster.send(session, error_msg)
            return False

        game_logger.info(f"{session.name}'s move is {pit}")
        self.broadcaster.broadcast_except(f"{session.name}'s move is {pit}", session.session_id)

        bonus = self.sow(session, pit)
        self.broadcaster.send_status()

        if bonus:
            self.registry.set_mover(session.session_id)
        else:
            successor = self.registry.next_registered_after(session.session_id)
            self.registry.set_mover(successor.session_id if successor else session.session_id)
        return True

    def sow(self, session: Session, pit: int) -> bool:
        """
        Distribute the pebbles of `pit` one by one into the following pits.

        The mover's own row is filled up to and including its end pit. Every
        row visited after leaving it, the mover's included, stops short of
        the end pit.

        Returns:
            True if the last pebble landed in the mover's end pit (bonus turn)
        """
        pebbles = session.board.take(pit)
        current = session
        index = pit
        ceiling = NPITS
        landed = None

        while pebbles:
            if index < ceiling:
                index += 1
                current.board.drop(index)
                pebbles -= 1
                landed = (current.session_id, index)
            else:
                ceiling = NPITS - 1
                index = -1
                current = self.registry.next_after(current.session_id)

        # The mover's end pit is reachable only on the first pass, so this is
        # equivalent to pebbles == NPITS - pit for any pebble count.
        return landed == (session.session_id, NPITS)

    def prompt(self, session: Session):
        """Ask the mover for a move and tell everyone else whose move it is"""
        session.prompted = True
        self.broadcaster.broadcast_except(f"It is {session.name}'s move.", session.session_id)
        self.broadcaster.send(session, YOUR_MOVE)

    def needs_prompt(self) -> Optional[Session]:
        """The mover, if it is registered and has not been prompted yet"""
        mover = self.registry.mover
        if mover is not None and mover.is_registered and not mover.prompted:
            return mover
        return None

    def game_is_over(self) -> bool:
        """True when any session's regular pits are all empty"""
        return any(s.board.row_is_empty() for s in self.registry)

    def settle(self) -> List[Tuple[str, int]]:
        """
        Announce the end of the game and every registered player's points
        (all pits including the end pit).

        Returns:
            List of (name, points) in registry order
        """
        game_logger.info(GAME_OVER)
        self.broadcaster.broadcast(GAME_OVER)

        scores = []
        for session in self.registry:
            points = session.board.total()
            game_logger.info(f"{session.label()} has {points} points")
            if session.is_registered:
                self.broadcaster.broadcast(f"{session.name} has {points} points")
                scores.append((session.name, points))
        return scores
