"""
Game-wide constants shared by the server, the client and the tests.
"""

NPITS = 6  # regular pits on a side, not counting the end pit
NPEBBLES = 4  # initial pebbles per pit for the first session
MAX_NAME = 80  # longest accepted name, in bytes
MAX_MESSAGE = MAX_NAME + 50  # longest accepted move line, in bytes

DEFAULT_PORT = 3000
LINE_END = "\r\n"
