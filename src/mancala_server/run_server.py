import argparse
import logging

from mancala_server.common import DEFAULT_PORT
from mancala_server.server import MancalaServer

logger = logging.getLogger("MancalaServer")


def configure_logging(verbose=False):
    """
    Configure logging levels for all loggers

    Args:
        verbose: Whether to enable verbose (DEBUG) logging
    """
    root_logger = logging.getLogger()
    if verbose:
        root_logger.setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled (DEBUG level)")
    else:
        root_logger.setLevel(logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a Mancala game server")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help="Port to listen on")
    parser.add_argument("--host", type=str, default="", help="Address to bind (default: all interfaces)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    server = MancalaServer(host=args.host, port=args.port)
    if not server.start():
        return 1
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        server.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
