import logging
from typing import Optional, Set

from mancala_server.models import Session, SessionRegistry
from mancala_server.protocol import frame

logger = logging.getLogger("MancalaServer")


class Broadcaster:
    """
    Sends protocol lines to registered sessions.

    Sends are blocking and fully flushed. A session whose send fails is
    recorded in `failed` instead of raising; the server drops those
    sessions once the current dispatch has finished.
    """

    def __init__(self, registry: SessionRegistry):
        self.registry = registry
        self.failed: Set[int] = set()

    def send(self, session: Session, text: str):
        """Send one line to a single session, registered or not"""
        if session.session_id in self.failed:
            return
        try:
            session.conn.sendall(frame(text))
        except OSError as e:
            logger.error(f"Error sending to {session.label()}: {e}")
            self.failed.add(session.session_id)

    def broadcast(self, text: str):
        """Send a line to every registered session"""
        for session in self.registry.registered():
            self.send(session, text)

    def broadcast_except(self, text: str, session_id: int):
        """Send a line to every registered session other than `session_id`"""
        for session in self.registry.registered():
            if session.session_id != session_id:
                self.send(session, text)

    def send_status(self, target: Optional[Session] = None):
        """
        Render one status line per registered session, in registry order.

        Args:
            target: Session to report to, or None to broadcast the report
        """
        for session in self.registry.registered():
            line = session.board.render(session.name)
            if target is None:
                self.broadcast(line)
            else:
                self.send(target, line)
