import logging
import selectors
import socket
from typing import List, Optional, Set, Tuple

from mancala_server.common import DEFAULT_PORT
from mancala_server.game import MancalaGame, game_logger
from mancala_server.models import Session
from mancala_server.protocol import MessageTooLong, PeerDisconnected

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("MancalaServer")


class MancalaServer:
    """
    Single-threaded Mancala server.

    One selector multiplexes the listening socket and every session. Each
    iteration re-computes interest (read for everyone, write for the mover
    while it still needs a prompt), waits for readiness, accepts at most one
    new connection, feeds readable sessions to the game and finally prompts
    the mover. The loop ends when the game-over predicate holds.
    """

    def __init__(self, host: str = "", port: int = DEFAULT_PORT, poll_interval: float = 0.5):
        """
        Initialize the server

        Args:
            host: Host address to bind the server to ("" for all interfaces)
            port: Port to listen on (0 picks a free port)
            poll_interval: Longest time one readiness wait may block, in seconds
        """
        self.host = host
        self.port = port
        self.poll_interval = poll_interval
        self.game = MancalaGame()
        self.socket = None
        self.selector = None
        self.is_running = False
        self.scores: Optional[List[Tuple[str, int]]] = None
        self._serving = False

    def start(self) -> bool:
        """Bind and listen. Returns False if the listener could not be created."""
        try:
            self.socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.socket.bind((self.host, self.port))
            self.socket.listen(5)
            self.socket.setblocking(False)
            self.port = self.socket.getsockname()[1]
        except OSError as e:
            logger.error(f"Failed to start server: {e}")
            if self.socket:
                self.socket.close()
                self.socket = None
            return False

        self.selector = selectors.DefaultSelector()
        self.selector.register(self.socket, selectors.EVENT_READ, data=None)
        self.is_running = True
        logger.info(f"Server started on {self.host or '*'}:{self.port}")
        return True

    def stop(self):
        """Ask the event loop to exit; closes everything right away if it is not running"""
        self.is_running = False
        if not self._serving:
            self._close()

    def run(self) -> Optional[List[Tuple[str, int]]]:
        """Start the server and serve until the game ends"""
        if not self.start():
            return None
        return self.serve_forever()

    def serve_forever(self) -> Optional[List[Tuple[str, int]]]:
        """
        Run the event loop until the game is over or stop() is called.

        Returns:
            Final (name, points) list if the game ended, None if stopped early
        """
        self._serving = True
        try:
            while self.is_running and not self.game.game_is_over():
                self._poll_once()

            if self.game.game_is_over():
                self.scores = self.game.settle()
            return self.scores
        finally:
            self._serving = False
            self.is_running = False
            self._close()

    def _poll_once(self):
        """One pass of the event loop: interest, wait, accept, read, prompt"""
        self._update_interest()

        accept = False
        readable: Set[int] = set()
        writable: Set[int] = set()
        for key, mask in self.selector.select(timeout=self.poll_interval):
            if key.data is None:
                accept = True
                continue
            if mask & selectors.EVENT_READ:
                readable.add(key.data)
            if mask & selectors.EVENT_WRITE:
                writable.add(key.data)

        # One accept per iteration; further pending connections wait for the next pass
        if accept:
            self._accept_connection()

        for session in self.game.registry:
            if session.session_id in readable and session.session_id in self.game.registry:
                self._read_session(session)
                self._drop_failed_sessions()

        mover = self.game.needs_prompt()
        if mover is not None and mover.session_id in writable and not self.game.game_is_over():
            self.game.prompt(mover)
            self._drop_failed_sessions()

    def _update_interest(self):
        prompt_target = self.game.needs_prompt()
        for session in self.game.registry:
            events = selectors.EVENT_READ
            if session is prompt_target:
                events |= selectors.EVENT_WRITE
            key = self.selector.get_key(session.conn)
            if key.events != events:
                self.selector.modify(session.conn, events, data=session.session_id)

    def _accept_connection(self):
        try:
            conn, address = self.socket.accept()
        except OSError as e:
            logger.error(f"Error accepting connection: {e}")
            return

        conn.setblocking(True)
        logger.info(f"New connection from {address}")
        session = self.game.add_session(conn, address)
        self.selector.register(conn, selectors.EVENT_READ, data=session.session_id)
        self._drop_failed_sessions()

    def _read_session(self, session: Session):
        """Receive from a readable session and hand every complete line to the game"""
        try:
            chunk = session.conn.recv(4096)
            if not chunk:
                raise PeerDisconnected(f"{session.label()} closed the connection")
            session.decoder.feed(chunk)

            while session.session_id in self.game.registry and not self.game.game_is_over():
                line = session.decoder.next_line(self.game.message_limit(session))
                if line is None:
                    break
                logger.debug(f"Received line from {session.label()}: {line!r}")
                self.game.handle_line(session, line)
        except MessageTooLong as e:
            game_logger.info("message is too long.")
            logger.warning(f"Dropping {session.label()}: {e}")
            self._drop_session(session.session_id)
        except PeerDisconnected as e:
            logger.info(str(e))
            self._drop_session(session.session_id)
        except OSError as e:
            logger.error(f"Error receiving from {session.label()}: {e}")
            self._drop_session(session.session_id)

    def _drop_session(self, session_id: int):
        session = self.game.remove_session(session_id)
        if session is None:
            return
        if self.selector:
            try:
                self.selector.unregister(session.conn)
            except (KeyError, ValueError):
                pass
        try:
            session.conn.close()
        except OSError as e:
            logger.error(f"Error closing socket for {session.label()}: {e}")
        logger.info(f"Connection closed for {session.label()}")

    def _drop_failed_sessions(self):
        """Disconnect sessions whose sends failed; leave notices may fail further sends"""
        failed = self.game.broadcaster.failed
        while failed:
            self._drop_session(failed.pop())

    def _close(self):
        """Close every session connection, the listener and the selector"""
        for session in self.game.registry:
            try:
                session.conn.close()
            except OSError as e:
                logger.error(f"Error closing socket for {session.label()}: {e}")

        if self.selector:
            self.selector.close()
            self.selector = None

        if self.socket:
            try:
                self.socket.close()
            except OSError as e:
                logger.error(f"Error closing server socket: {e}")
            self.socket = None

        logger.info("Server stopped")


if __name__ == "__main__":
    MancalaServer().run()
