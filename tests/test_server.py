import asyncio
import socket
from pathlib import Path

import pytest

from dirserve.model import mount
from dirserve.server import AIOSocketServer, ServerOptions, ServerState, bind
from dirserve.services.files import DirectoryService


async def fetch(port: int, payload: bytes) -> bytes:
	reader, writer = await asyncio.open_connection("127.0.0.1", port)
	writer.write(payload)
	await writer.drain()
	data = await reader.read()
	writer.close()
	await writer.wait_closed()
	return data


def serve(root: Path, *payloads: bytes) -> list[bytes]:
	"""Runs the server on an ephemeral port, sends each payload on its own
	connection and returns the raw responses."""
	app = mount(DirectoryService(root, interval=0.05))
	state = ServerState()
	options = ServerOptions(
		host="127.0.0.1",
		port=0,
		fallbackPort=None,
		polling=0.05,
		stopSignals=False,
		logRequests=False,
	)

	async def main() -> list[bytes]:
		server = asyncio.create_task(AIOSocketServer.Serve(app, options, state))
		while state.port is None:
			await asyncio.sleep(0.01)
		# The application is started right after binding
		await asyncio.sleep(0.2)
		try:
			return [await fetch(state.port, _) for _ in payloads]
		finally:
			state.stop()
			await server

	return asyncio.run(asyncio.wait_for(main(), timeout=20))


@pytest.fixture
def root(tmp_path: Path) -> Path:
	res = tmp_path / "root"
	res.mkdir()
	(res / "style.css").write_bytes(b"body{}")
	(res / "sub").mkdir()
	(res / "sub" / "page.html").write_bytes(b"<p>Page</p>")
	return res


def test_serves_listing_files_and_errors(root: Path):
	index, css, missing = serve(
		root,
		b"GET / HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n",
		b"GET /style.css HTTP/1.1\r\nConnection: close\r\n\r\n",
		b"GET /missing.js HTTP/1.0\r\n\r\n",
	)
	head, _, body = index.partition(b"\r\n\r\n")
	assert head.startswith(b"HTTP/1.1 200 OK\r\n")
	assert b"Content-Type: text/html" in head
	assert b'<a href="/sub/page.html">sub/page.html</a>' in body
	assert b'<a href="/style.css">style.css</a>' in body

	head, _, body = css.partition(b"\r\n\r\n")
	assert b"Content-Type: text/css" in head
	assert b"Content-Length: 6" in head
	assert body == b"body{}"

	head, _, body = missing.partition(b"\r\n\r\n")
	assert head.startswith(b"HTTP/1.0 200 OK\r\n")
	assert b"Content-Type: text/html" in head
	assert b"<pre><code>" in body
	assert b"No such file or directory" in body


def test_keep_alive_pipelining(root: Path):
	(response,) = serve(
		root,
		b"GET /style.css HTTP/1.1\r\n\r\n"
		b"HEAD /sub/page.html HTTP/1.1\r\nConnection: close\r\n\r\n",
	)
	first, second = response.split(b"HTTP/1.1 200 OK\r\n")[1:]
	assert first.endswith(b"\r\n\r\nbody{}")
	assert b"Content-Length: 11" in second
	# HEAD responses have no body
	assert second.endswith(b"\r\n\r\n")


def test_bad_request(root: Path):
	(response,) = serve(root, b"NONSENSE\r\n\r\n")
	assert response.startswith(b"HTTP/1.1 400 Bad Request")


def test_bind_falls_back_to_the_fallback_port():
	taken = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
	taken.bind(("127.0.0.1", 0))
	taken.listen(1)
	port = taken.getsockname()[1]
	# We find a free port to use as the fallback
	free = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
	free.bind(("127.0.0.1", 0))
	fallback = free.getsockname()[1]
	free.close()
	try:
		server, bound = bind(
			ServerOptions(host="127.0.0.1", port=port, fallbackPort=fallback)
		)
		server.close()
		assert bound == fallback
		with pytest.raises(OSError):
			bind(ServerOptions(host="127.0.0.1", port=port, fallbackPort=None))
	finally:
		taken.close()


# EOF
