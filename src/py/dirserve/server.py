import asyncio
import socket
import threading
from dataclasses import dataclass
from signal import SIGINT, SIGTERM
from typing import Any, Callable, NamedTuple

from .config import FALLBACK_PORT, HOST, LOG_REQUESTS, PORT
from .http.model import HTTPBodyWriter, HTTPProcessingStatus, HTTPRequest, HTTPResponse
from .http.parser import HTTPParser
from .model import Application, Service, mount
from .utils.logging import debug, error, event, exception, info, logged, warning


@dataclass(slots=True)
class ServerState:
	isRunning: bool = True
	host: str | None = None
	port: int | None = None

	@property
	def url(self) -> str | None:
		return f"http://{self.host}:{self.port}" if self.port is not None else None

	def stop(self) -> None:
		info("Server stopping…")
		self.isRunning = False

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		e = context.get("exception")
		if e:
			exception(e)


class ServerOptions(NamedTuple):
	host: str = HOST
	# A port of `0` binds an ephemeral port
	port: int = PORT
	fallbackPort: int | None = FALLBACK_PORT
	backlog: int = 1_000
	# This is the polling timeout for accepting new requests.
	polling: float = 1.0
	readsize: int = 4_096
	keepalive: float = 30.0
	logRequests: bool = LOG_REQUESTS
	condition: Callable[[], bool] | None = None
	stopSignals: bool = True


SERVER_BAD_REQUEST: bytes = (
	b"HTTP/1.1 400 Bad Request\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 11\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Bad Request"
)

SERVER_ERROR: bytes = (
	b"HTTP/1.1 500 Internal Server Error\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 21\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Internal server error"
)


class AIOSocketBodyWriter(HTTPBodyWriter):
	"""Specialized body writer to work with AIO sockets."""

	def __init__(self, client: "socket.socket", loop: asyncio.AbstractEventLoop) -> None:
		super().__init__()
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def _writeBytes(self, chunk: bytes) -> bool:
		if chunk:
			await self.loop.sock_sendall(self.client, chunk)
		return True


def bind(options: ServerOptions) -> tuple[socket.socket, int]:
	"""Binds a listening socket to the given host and port, falling back
	to the fallback port when it can't be bound."""
	server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
	server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
	try:
		server.bind((options.host, options.port))
	except OSError as e:
		if options.fallbackPort is None or options.fallbackPort == options.port:
			server.close()
			error(f"Unable to bind to {options.host}:{options.port}", "HOSTPORTERR")
			raise
		warning(
			f"Could not bind to {options.host}:{options.port}, trying fallback port",
			Port=options.fallbackPort,
		)
		try:
			server.bind((options.host, options.fallbackPort))
		except OSError as f:
			server.close()
			error(
				f"Unable to bind to {options.host}:{options.fallbackPort}, aborting.",
				"HOSTPORTERR",
			)
			raise f from e
	port: int = server.getsockname()[1]
	return server, port


class AIOSocketServer:
	"""AsyncIO backend using sockets directly."""

	@classmethod
	async def OnRequest(
		cls,
		app: Application,
		client: socket.socket,
		*,
		loop: asyncio.AbstractEventLoop,
		options: ServerOptions,
	) -> None:
		"""Asynchronous worker, processing a socket in the context
		of an application. Requests are processed in sequence for as long
		as the connection is kept alive."""
		buffer = bytearray(options.readsize)
		keep_alive: bool = True
		req_count: int = 0
		res_count: int = 0
		try:
			parser: HTTPParser = HTTPParser()
			writer: AIOSocketBodyWriter = AIOSocketBodyWriter(client, loop)
			while keep_alive and not writer.shouldClose:
				try:
					n = await asyncio.wait_for(
						loop.sock_recv_into(client, buffer),
						timeout=options.keepalive,
					)
				except asyncio.TimeoutError:
					if req_count != res_count:
						warning(
							"Client timed out", Requests=req_count, Responses=res_count
						)
					break
				if not n:
					# A no-data means a close
					break
				for atom in parser.feed(bytes(buffer[:n])):
					if atom is HTTPProcessingStatus.BadFormat:
						warning("Malformed request, closing connection")
						await writer.write(SERVER_BAD_REQUEST)
						keep_alive = False
						break
					elif isinstance(atom, HTTPRequest):
						req = atom
						req_count += 1
						if options.logRequests:
							event(req.method, req.path)
						if (
							req.protocol == "HTTP/1.0"
							or (req.header("Connection") or "").lower() == "close"
						):
							keep_alive = False
						if await cls.SendResponse(req, app, writer):
							res_count += 1
						else:
							keep_alive = False
							break
			if res_count != req_count:
				warning("Incomplete responses", Requests=req_count, Responses=res_count)
		except Exception as e:
			exception(e)
		finally:
			client.close()

	@staticmethod
	async def SendResponse(
		request: HTTPRequest,
		app: Application,
		writer: HTTPBodyWriter,
	) -> HTTPResponse | None:
		"""Processes the request within the application and sends a response
		using the given writer. Any exception raised by the application is
		answered with a 500 for this request only."""
		try:
			res: HTTPResponse = await app.process(request)
		except Exception as e:
			exception(e, f"Failed processing {request.method} {request.path}")
			try:
				await writer.write(SERVER_ERROR)
			except OSError:
				pass
			return None
		try:
			await writer.write(res.head())
			# HEAD responses carry the headers of the GET response, but no body
			if request.method != "HEAD":
				await writer.write(res.body)
		except (BrokenPipeError, ConnectionResetError):
			# Client did an early close
			logged(debug) and debug("Client closed early", Path=request.path)
			return None
		return res

	@classmethod
	async def Serve(
		cls,
		app: Application,
		options: ServerOptions = ServerOptions(),
		state: ServerState | None = None,
	) -> None:
		"""Main server coroutine. The application is started once the socket
		is bound, and stopped when the server stops."""
		server, port = bind(options)
		# The argument is the backlog of connections that will be accepted before
		# they are refused.
		server.listen(options.backlog)
		server.setblocking(False)

		tasks: set[asyncio.Task[None]] = set()
		loop = asyncio.get_running_loop()

		state = state or ServerState()
		state.host, state.port = options.host, port
		# Registers handlers for signals and exception (so that we log them). Note
		# that signal handlers can only be set from the main thread.
		if (
			options.stopSignals
			and threading.current_thread() is threading.main_thread()
		):
			loop.add_signal_handler(SIGINT, lambda: state.stop())
			loop.add_signal_handler(SIGTERM, lambda: state.stop())
		loop.set_exception_handler(state.onException)

		try:
			await app.start()
			info(f"Listening on {state.url}", icon="🚀", Host=options.host, Port=port)
			while state.isRunning:
				if options.condition and not options.condition():
					break
				try:
					client, _ = await asyncio.wait_for(
						loop.sock_accept(server), timeout=options.polling or 1.0
					)
				except asyncio.TimeoutError:
					continue
				except OSError as e:
					# This can be: [OSError] [Errno 24] Too many open files
					if e.errno == 24:
						await asyncio.sleep(0.1)
					else:
						exception(e)
					continue
				task = loop.create_task(
					cls.OnRequest(app, client, loop=loop, options=options)
				)
				tasks.add(task)
				task.add_done_callback(tasks.discard)
		finally:
			server.close()
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)
			await app.stop()


def run(
	*components: Application | Service,
	host: str = HOST,
	port: int = PORT,
	fallbackPort: int | None = FALLBACK_PORT,
	condition: Callable[[], bool] | None = None,
	logRequests: bool = LOG_REQUESTS,
) -> None:
	"""High level function to run the server."""
	options = ServerOptions(
		host=host,
		port=port,
		fallbackPort=fallbackPort,
		condition=condition,
		logRequests=logRequests,
	)
	app = mount(*components)
	try:
		asyncio.run(AIOSocketServer.Serve(app, options))
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


# EOF
