from typing import Iterator, Literal, TypeAlias

from .model import (
	HTTPBodyBlob,
	HTTPHeaders,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestLine,
	headername,
)

EOL: bytes = b"\r\n"

# Limits on the request head, beyond which the request is rejected as
# malformed.
MAX_LINE_LENGTH: int = 8_192
MAX_HEADERS: int = 100

HTTPAtom: TypeAlias = (
	HTTPRequestLine | HTTPHeaders | HTTPProcessingStatus | HTTPRequest
)


class HTTPLimitExceeded(ValueError):
	"""Raised when the request head exceeds one of the parser limits."""


class LineParser:
	"""Accumulates bytes until an end of line is found."""

	__slots__ = ["buffer", "line", "offset", "eol", "limit"]

	def __init__(self, limit: int = MAX_LINE_LENGTH) -> None:
		self.buffer: bytearray = bytearray()
		self.line: bytes | None = None
		self.offset: int = 0
		self.eol: bytes = EOL
		self.limit: int = limit

	def reset(self) -> "LineParser":
		self.buffer.clear()
		self.line = None
		self.offset = 0
		return self

	def flush(self) -> bytes | None:
		return self.line

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bytes | None, int]:
		"""Returns the matching line and how many bytes were read in chunk
		from start. When line is None, then the whole chunk has been
		processed."""
		pos = len(self.buffer)
		self.buffer += chunk[start:]
		end = self.buffer.find(self.eol, self.offset)
		if end > self.limit or (end == -1 and len(self.buffer) > self.limit):
			raise HTTPLimitExceeded(f"Line is longer than {self.limit} bytes")
		elif end == -1:
			self.offset = max(0, len(self.buffer) - len(self.eol) + 1)
			return None, len(chunk) - start
		else:
			self.line = bytes(self.buffer[:end])
			self.buffer.clear()
			self.offset = 0
			return self.line, (end - pos) + len(self.eol)


class MessageParser:
	"""Parses an HTTP request line."""

	__slots__ = ["line", "value"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.value: HTTPRequestLine | None = None

	def flush(self) -> HTTPRequestLine | None:
		res = self.value
		self.reset()
		return res

	def reset(self) -> "MessageParser":
		self.line.reset()
		self.value = None
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			# Stray empty lines between pipelined requests are skipped
			return None, read
		ln = line.decode("latin1")
		i = ln.find(" ")
		j = ln.rfind(" ")
		if i == -1 or i == j:
			return False, read
		p: list[str] = ln[i + 1 : j].split("?", 1)
		self.value = HTTPRequestLine(
			ln[0:i].upper(), p[0], p[1] if len(p) > 1 else "", ln[j + 1 :]
		)
		return True, read


class HeadersParser:
	__slots__ = ["headers", "contentType", "contentLength", "line"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(self.headers, self.contentType, self.contentLength)
		self.reset()
		return res

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.contentType = None
		self.contentLength = None
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | None, int]:
		"""Feeds data from chunk, starting at `start` offset. Returns
		a value and the next start offset. When the value is `None`, no
		header has been extracted, when the value is `False` it's the empty
		line ending the headers, otherwise it's the header name."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			return False, read
		ln: str = line.decode("latin1")
		i = ln.find(":")
		if i == -1:
			return None, read
		h = ln[:i].lower().strip()
		v = ln[i + 1 :].strip()
		if h == "content-length":
			try:
				self.contentLength = max(0, int(v))
			except ValueError:
				self.contentLength = None
		elif h == "content-type":
			self.contentType = v
		n: str = headername(h)
		if n not in self.headers and len(self.headers) >= MAX_HEADERS:
			raise HTTPLimitExceeded(f"More than {MAX_HEADERS} headers")
		self.headers[n] = v
		return n, read


class BodyLengthParser:
	"""Consumes the body of a request with Content-Length set. Requests
	are answered from their path alone, so the body is counted but its
	data is discarded."""

	__slots__ = ["expected", "read"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0

	def flush(self) -> HTTPBodyBlob:
		res = HTTPBodyBlob(b"", self.read)
		self.reset()
		return res

	def reset(self, length: int = 0) -> "BodyLengthParser":
		self.expected = length
		self.read = 0
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		to_read: int = min(len(chunk) - start, self.expected - self.read)
		self.read += to_read
		return (True if self.read >= self.expected else None), to_read


class HTTPParser:
	"""A stateful HTTP request parser. Chunks are fed as they are received,
	and atoms are yielded as they are parsed, complete requests being
	yielded as `HTTPRequest`. More than one request may be yielded from
	a single chunk when pipelining."""

	def __init__(self) -> None:
		self.message: MessageParser = MessageParser()
		self.headers: HeadersParser = HeadersParser()
		self.body: BodyLengthParser = BodyLengthParser()
		self.parser: MessageParser | HeadersParser | BodyLengthParser = self.message
		self.requestLine: HTTPRequestLine | None = None
		self.requestHeaders: HTTPHeaders | None = None

	def reset(self) -> "HTTPParser":
		self.message.reset()
		self.headers.reset()
		self.body.reset()
		self.parser = self.message
		self.requestLine = None
		self.requestHeaders = None
		return self

	def request(self, body: HTTPBodyBlob) -> HTTPRequest | None:
		line, headers = self.requestLine, self.requestHeaders
		self.requestLine = None
		self.requestHeaders = None
		self.parser = self.message.reset()
		if line is None or headers is None:
			return None
		return HTTPRequest(
			method=line.method,
			path=line.path,
			query=parseQuery(line.query),
			headers=headers,
			body=body,
			protocol=line.protocol,
		)

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		size: int = len(chunk)
		offset: int = 0
		while offset < size:
			try:
				value, read = self.parser.feed(chunk, offset)
			except HTTPLimitExceeded:
				self.reset()
				yield HTTPProcessingStatus.BadFormat
				return
			offset += read
			if value is None:
				continue
			elif self.parser is self.message:
				if value is False:
					self.message.reset()
					yield HTTPProcessingStatus.BadFormat
					continue
				line = self.message.flush()
				self.requestLine = line
				if line is not None:
					yield line
					self.parser = self.headers.reset()
			elif self.parser is self.headers:
				# `value` is the header name while headers are being parsed
				if value is False:
					headers = self.headers.flush()
					self.requestHeaders = headers
					yield headers
					if headers.contentLength:
						self.parser = self.body.reset(headers.contentLength)
						yield HTTPProcessingStatus.Body
					elif req := self.request(HTTPBodyBlob()):
						yield req
			elif self.parser is self.body:
				if req := self.request(self.body.flush()):
					yield req
			else:
				raise RuntimeError(f"Unsupported parser: {self.parser}")


def parseQuery(text: str) -> dict[str, str]:
	res: dict[str, str] = {}
	if not text:
		return res
	for item in text.split("&"):
		kv = item.split("=", 1)
		if len(kv) == 1:
			res[item] = ""
		else:
			res[kv[0]] = kv[1]
	return res


# EOF
