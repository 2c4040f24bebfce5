import logging
import queue
import socket
import threading
import time
from typing import Callable, List, Optional

from mancala_server.common import DEFAULT_PORT, MAX_MESSAGE
from mancala_server.protocol import LineDecoder, MessageTooLong, frame

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("MancalaClient")

# Server lines are short; this only guards against a runaway peer
MAX_SERVER_LINE = MAX_MESSAGE * 4


class MancalaClient:
    """
    Client for the Mancala line protocol.

    A background thread splits incoming bytes into lines. Every line is
    queued for wait_for() and, if given, passed to `line_callback`.
    """

    def __init__(self, host: str = "localhost", port: int = DEFAULT_PORT,
                 line_callback: Optional[Callable[[str], None]] = None):
        """
        Initialize the client

        Args:
            host: Host address of the server
            port: Port of the server
            line_callback: Called from the receive thread with each line from the server
        """
        self.host = host
        self.port = port
        self.socket = None
        self.is_connected = False
        self.line_callback = line_callback
        self.lines: "queue.Queue[str]" = queue.Queue()
        self.history: List[str] = []
        self.receive_thread = None

    def connect(self) -> bool:
        """
        Connect to the server

        Returns:
            True if the connection was successful, False otherwise
        """
        try:
            self.socket = socket.create_connection((self.host, self.port))
            self.is_connected = True
            logger.info(f"Connected to server at {self.host}:{self.port}")

            self.receive_thread = threading.Thread(target=self._receive_lines)
            self.receive_thread.daemon = True
            self.receive_thread.start()
            return True
        except OSError as e:
            logger.error(f"Failed to connect to server: {e}")
            return False

    def disconnect(self):
        """Disconnect from the server"""
        self.is_connected = False
        if self.socket:
            try:
                # shutdown wakes the receive thread and sends FIN even while recv() blocks
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                self.socket.close()
            except OSError as e:
                logger.error(f"Error closing socket: {e}")
        logger.info("Disconnected from server")

    def send_line(self, text: str):
        """Send one line to the server"""
        if not self.is_connected:
            logger.error("Not connected to server")
            return
        try:
            self.socket.sendall(frame(text))
            logger.debug(f"Sent line: {text!r}")
        except OSError as e:
            logger.error(f"Error sending line: {e}")

    def wait_for(self, fragment: str, timeout: float = 5.0) -> Optional[str]:
        """
        Consume received lines until one contains `fragment`.

        Returns:
            The matching line, or None if it did not arrive within `timeout` seconds
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            try:
                line = self.lines.get(timeout=remaining)
            except queue.Empty:
                return None
            if fragment in line:
                return line

    def _receive_lines(self):
        decoder = LineDecoder()
        while self.is_connected:
            try:
                chunk = self.socket.recv(4096)
                if not chunk:
                    logger.info("Connection closed by server")
                    self.is_connected = False
                    break

                decoder.feed(chunk)
                while True:
                    line = decoder.next_line(MAX_SERVER_LINE)
                    if line is None:
                        break
                    self._process_line(line)
            except MessageTooLong as e:
                logger.error(f"Server line too long: {e}")
                self.is_connected = False
                break
            except OSError as e:
                if self.is_connected:
                    logger.error(f"Error receiving from server: {e}")
                self.is_connected = False
                break

    def _process_line(self, line: str):
        logger.debug(f"Received line: {line!r}")
        self.history.append(line)
        self.lines.put(line)
        if self.line_callback:
            try:
                self.line_callback(line)
            except Exception as e:
                logger.error(f"Error in line callback: {e}")
