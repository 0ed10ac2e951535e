import posixpath
from enum import Enum
from pathlib import Path
from typing import NamedTuple, TypeAlias
from urllib.parse import unquote

from .config import INDEX_NAMES
from .sync import DocumentSlot

# -----------------------------------------------------------------------------
#
# CONTENT CLASSIFICATION
#
# -----------------------------------------------------------------------------


class ContentKind(Enum):
	"""The media kinds a served file can be classified as. The value is
	the content type sent in the response."""

	CSS = "text/css"
	JavaScript = "application/javascript"
	WASM = "application/wasm"
	HTML = "text/html"

	@property
	def contentType(self) -> str:
		return self.value


CONTENT_KINDS: dict[str, ContentKind] = {
	".css": ContentKind.CSS,
	".js": ContentKind.JavaScript,
	".wasm": ContentKind.WASM,
}


def classify(path: str | Path) -> ContentKind:
	"""Classifies the path by its (case-insensitive) suffix, defaulting
	to HTML."""
	return CONTENT_KINDS.get(Path(path).suffix.lower(), ContentKind.HTML)


# -----------------------------------------------------------------------------
#
# RESOLUTION
#
# -----------------------------------------------------------------------------


class Content(NamedTuple):
	"""The resolved file was read successfully."""

	data: bytes
	kind: ContentKind
	path: Path


class RenderedError(NamedTuple):
	"""The resolved file could not be read, `description` is meant to be
	shown to the user."""

	description: str
	path: Path | None = None


Resolution: TypeAlias = Content | RenderedError


class ResolutionError(Exception):
	"""Raised when a request path can't be mapped to a local path."""


def normalizePrefix(prefix: str | None) -> str:
	"""Normalizes the prefix as `/` or `/some/path`, without trailing slash."""
	p = (prefix or "").strip("/")
	return f"/{p}" if p else "/"


class RequestResolver:
	"""Maps request paths to either the document slot (for the entry page)
	or a file under the root, and reads it."""

	def __init__(
		self, root: str | Path, slot: DocumentSlot, prefix: str | None = "/"
	) -> None:
		self.root: Path = Path(root).absolute()
		self.slot: DocumentSlot = slot
		self.prefix: str = normalizePrefix(prefix)

	def strip(self, path: str) -> str | None:
		"""Returns the path with the query removed, percent-decoded and
		without the prefix, or `None` when the path is not under the prefix.
		Encoded bytes that are not valid UTF-8 are kept as is, so that any
		local file name can be requested."""
		path = unquote(path.split("?", 1)[0], errors="surrogateescape")
		if not path.startswith("/"):
			path = f"/{path}"
		if self.prefix == "/":
			return path
		elif path == self.prefix or path.startswith(f"{self.prefix}/"):
			return path[len(self.prefix) :] or "/"
		else:
			return None

	def isIndex(self, path: str) -> bool:
		name = path.lstrip("/")
		return not name or name in INDEX_NAMES

	def target(self, path: str) -> Path:
		"""Resolves the request path to the local path to be read."""
		rest = self.strip(path)
		if rest is None:
			raise ResolutionError(f"Path is outside of prefix '{self.prefix}': {path}")
		elif "\x00" in rest:
			raise ResolutionError(f"Path contains a null byte: {path}")
		elif self.isIndex(rest):
			# A hand-authored entry page takes precedence over the listing
			index = self.root / "index.html"
			return index if index.is_file() else self.slot.path
		relative = posixpath.normpath(rest.lstrip("/"))
		if relative == ".." or relative.startswith("../"):
			raise ResolutionError(f"Path is outside of the served directory: {path}")
		local = self.root / relative
		if local.is_dir():
			local = local / "index.html"
		return local

	def resolve(self, path: str) -> Resolution:
		"""Resolves and reads the given request path. Any failure is
		returned as a `RenderedError`, this never raises for I/O errors."""
		try:
			local = self.target(path)
		except ResolutionError as e:
			return RenderedError(str(e))
		try:
			data = self.slot.read() if local == self.slot.path else local.read_bytes()
		except (OSError, ValueError) as e:
			return RenderedError(str(e), local)
		return Content(data, classify(local), local)


# EOF
