import argparse
import logging
import random
import re
import time
from typing import Dict, List, Optional, Tuple

from mancala_server.client import MancalaClient
from mancala_server.common import DEFAULT_PORT
from mancala_server.protocol import (
    DUPLICATE_NAME, EMPTY_NAME, GAME_OVER, INVALID_MOVE, WELCOME, YOUR_MOVE
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("RandomAgent")

_PIT = re.compile(r"\[(\d+)\](\d+)")
_END_PIT = re.compile(r"\[end pit\](\d+)$")
_POINTS = re.compile(r"^(?P<name>.+) has (?P<points>\d+) points$")


def parse_status_line(line: str) -> Optional[Tuple[str, List[int], int]]:
    """
    Parse a board status line such as "ann: [0]4 [1]4 ... [end pit]0".

    Returns:
        Tuple of (name, regular pits, end pit), or None for any other line
    """
    head = line.rfind(": [0]")
    end = _END_PIT.search(line)
    if head < 0 or end is None:
        return None
    pits = [int(count) for _, count in _PIT.findall(line[head + 2:end.start()])]
    return line[:head], pits, int(end.group(1))


class RandomAgent:
    """
    Agent that registers under a name and answers every prompt with a
    random non-empty pit of its own row.

    Useful for exercising the server end to end.
    """

    def __init__(self, name: str, host: str = "localhost", port: int = DEFAULT_PORT,
                 verbose: bool = False):
        """
        Initialize the random agent

        Args:
            name: Name to register with; a suffix is added if it is taken
            host: Host address of the server
            port: Port of the server
            verbose: Whether to log every move
        """
        self.name = name
        self.host = host
        self.port = port
        self.verbose = verbose
        self.client = MancalaClient(host=host, port=port, line_callback=self._on_line)
        self.connected = False
        self.registered = False
        self.pits: List[int] = []
        self.moves_made = 0
        self.game_over = False
        self.scores: Dict[str, int] = {}

    def connect(self) -> bool:
        """Connect to the server; registration starts when the welcome line arrives"""
        self.connected = self.client.connect()
        return self.connected

    def disconnect(self):
        """Disconnect from the server"""
        if self.connected:
            self.client.disconnect()
            self.connected = False

    def choose_pit(self) -> Optional[int]:
        """Pick a random non-empty pit from the last known status of our row"""
        candidates = [i for i, count in enumerate(self.pits) if count > 0]
        if not candidates:
            return None
        return random.choice(candidates)

    def _on_line(self, line: str):
        if line == WELCOME:
            self.client.send_line(self.name)
        elif line in (EMPTY_NAME, DUPLICATE_NAME):
            self.name = f"{self.name}_{random.randint(0, 999)}"
            self.client.send_line(self.name)
        elif line == f"{self.name} has joined the game.":
            self.registered = True
        elif line in (YOUR_MOVE, INVALID_MOVE):
            self._move()
        elif line == GAME_OVER:
            self.game_over = True
        else:
            self._observe(line)

    def _move(self):
        pit = self.choose_pit()
        if pit is None:
            logger.warning(f"{self.name} has no legal move")
            return
        if self.verbose:
            logger.info(f"{self.name} sows pit {pit} of {self.pits}")
        self.client.send_line(str(pit))
        self.moves_made += 1

    def _observe(self, line: str):
        status = parse_status_line(line)
        if status is not None:
            name, pits, _ = status
            if name == self.name:
                self.pits = pits
            return

        match = _POINTS.match(line)
        if match and self.game_over:
            self.scores[match.group("name")] = int(match.group("points"))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Play Mancala with random moves")
    parser.add_argument("--name", type=str, default="random", help="Name to register with")
    parser.add_argument("--host", type=str, default="localhost", help="Host address of the server")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help="Port of the server")
    parser.add_argument("--verbose", action="store_true", help="Log every move")
    args = parser.parse_args()

    agent = RandomAgent(args.name, host=args.host, port=args.port, verbose=args.verbose)
    if agent.connect():
        try:
            while agent.client.is_connected:
                time.sleep(0.5)
        except KeyboardInterrupt:
            pass
        finally:
            agent.disconnect()
        logger.info(f"Final scores: {agent.scores}")
