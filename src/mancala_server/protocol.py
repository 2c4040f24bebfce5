"""
Line framing for the Mancala text protocol.

Clients send ASCII lines ended by \\n, \\r or \\r\\n; the server answers with
\\r\\n-terminated lines. Each connection owns a LineDecoder that buffers raw
bytes until a terminator arrives.
"""
import re
from typing import Optional

from mancala_server.common import LINE_END

_TERMINATOR = re.compile(rb"[\r\n]")
_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")

WELCOME = "Welcome to Mancala. What is your name?"
EMPTY_NAME = "Empty name, try again?"
DUPLICATE_NAME = "Duplicate name, try again?"
NOT_YOUR_MOVE = "It's not your move."
INVALID_MOVE = "Invalid move, try again?"
YOUR_MOVE = "Your move?"
GAME_OVER = "Game over!"


class MessageTooLong(ValueError):
    """A peer sent more bytes than its message class allows without ending the line"""


class PeerDisconnected(ConnectionError):
    """The peer closed the connection"""


def frame(text: str) -> bytes:
    """Encode one outgoing protocol line"""
    return (text + LINE_END).encode("utf-8")


def parse_move(line: str) -> Optional[int]:
    """
    Parse the leading decimal integer of a move line.

    Trailing text after the number is ignored; a line that does not start
    with a number yields None.
    """
    match = _LEADING_INT.match(line)
    if match is None:
        return None
    return int(match.group(1))


class LineDecoder:
    """Accumulates bytes from one connection and splits them into trimmed lines"""

    def __init__(self):
        self.buffer = b""
        self._skip_lf = False  # last line ended with \r; a following \n belongs to it

    def feed(self, data: bytes):
        self.buffer += data

    def next_line(self, limit: int) -> Optional[str]:
        """
        Pop the next complete line, or return None if none is buffered yet.

        Args:
            limit: Maximum number of bytes allowed before the terminator

        Raises:
            MessageTooLong: if more than `limit` bytes are buffered without a terminator
        """
        if self._skip_lf and self.buffer:
            if self.buffer.startswith(b"\n"):
                self.buffer = self.buffer[1:]
            self._skip_lf = False

        match = _TERMINATOR.search(self.buffer)
        if match is None:
            if len(self.buffer) > limit:
                raise MessageTooLong(f"{len(self.buffer)} bytes without a line terminator")
            return None

        end = match.start()
        if end > limit:
            raise MessageTooLong(f"line of {end} bytes exceeds limit of {limit}")

        raw = self.buffer[:end]
        self._skip_lf = self.buffer[end:end + 1] == b"\r"
        self.buffer = self.buffer[end + 1:]
        return raw.decode("utf-8", errors="replace").strip()
