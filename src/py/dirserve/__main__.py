import argparse
import sys
from pathlib import Path
from typing import Sequence

from . import config
from .server import run
from .services.files import DirectoryService
from .utils.logging import info, setLevel


def port(value: str) -> int:
	try:
		res = int(value)
	except ValueError:
		raise argparse.ArgumentTypeError(f"invalid port number: '{value}'")
	if not 0 <= res <= 65535:
		raise argparse.ArgumentTypeError(f"port must be within 0-65535, got {res}")
	return res


def interval(value: str) -> float:
	try:
		res = float(value)
	except ValueError:
		raise argparse.ArgumentTypeError(f"invalid interval: '{value}'")
	if not res > 0:
		raise argparse.ArgumentTypeError(f"interval must be positive, got {value}")
	return res


def parser() -> argparse.ArgumentParser:
	res = argparse.ArgumentParser(
		prog="dirserve",
		description="Serves a local directory over HTTP, with an automatically refreshed listing page when it has no index.html",
	)
	res.add_argument(
		"root",
		nargs="?",
		default=".",
		help="Directory to serve (default: current directory)",
	)
	res.add_argument(
		"--prefix",
		default=config.PREFIX,
		help="Path prefix stripped from incoming request paths (default: %(default)s)",
	)
	res.add_argument(
		"--port",
		type=port,
		default=config.PORT,
		help="Port to listen on, 0 picks an ephemeral port (default: %(default)s)",
	)
	res.add_argument(
		"--host",
		default=config.HOST,
		help="Address to listen on (default: %(default)s)",
	)
	res.add_argument(
		"--interval",
		type=interval,
		default=config.INTERVAL,
		help="Seconds between two refreshes of the listing (default: %(default)s)",
	)
	res.add_argument(
		"--no-log-requests",
		dest="logRequests",
		action="store_false",
		default=config.LOG_REQUESTS,
		help="Do not log incoming requests",
	)
	res.add_argument(
		"-v", "--verbose", action="store_true", help="Enable debug logging"
	)
	return res


def main(args: Sequence[str] | None = None) -> int:
	p = parser()
	options = p.parse_args(sys.argv[1:] if args is None else args)
	root = Path(options.root).absolute()
	if not root.is_dir():
		p.error(f"root is not a directory: {root}")
	if options.verbose:
		setLevel("debug")
	info("Serving local directory", Root=str(root), Prefix=options.prefix)
	run(
		DirectoryService(root, prefix=options.prefix, interval=options.interval),
		host=options.host,
		port=options.port,
		logRequests=options.logRequests,
	)
	return 0


if __name__ == "__main__":
	sys.exit(main())

# EOF
