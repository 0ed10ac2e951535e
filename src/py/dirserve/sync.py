import asyncio
import os
import shutil
import tempfile
from pathlib import Path

from .config import DEFAULT_ENCODING, INTERVAL
from .listing import renderListing
from .utils.logging import debug, exception, info, logged, warning

# -----------------------------------------------------------------------------
#
# DOCUMENT SLOT
#
# -----------------------------------------------------------------------------


class DocumentSlot:
	"""The single location holding the current listing document. There is
	exactly one writer and any number of readers: a new document is written
	to a fresh temporary file next to the slot and then renamed over it, so
	that readers only ever see a complete document."""

	@staticmethod
	def Temporary() -> "DocumentSlot":
		"""Creates a slot within a new scratch directory, which is removed
		when the slot is disposed."""
		return DocumentSlot(
			Path(tempfile.mkdtemp(prefix="dirserve-")) / "index.html", scratch=True
		)

	def __init__(self, path: str | Path, *, scratch: bool = False) -> None:
		self.path: Path = Path(path).absolute()
		self.scratch: bool = scratch

	@property
	def exists(self) -> bool:
		return self.path.is_file()

	def publish(self, content: str) -> Path:
		"""Atomically replaces the slot content with `content`."""
		fd, temp = tempfile.mkstemp(
			prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
		)
		try:
			with os.fdopen(fd, "wb") as f:
				f.write(content.encode(DEFAULT_ENCODING))
				f.flush()
				os.fsync(f.fileno())
			os.replace(temp, self.path)
		except BaseException:
			# NOTE: The temp file may already be gone if the directory was
			# removed under us.
			try:
				os.unlink(temp)
			except OSError:
				pass
			raise
		return self.path

	def read(self) -> bytes:
		with open(self.path, "rb") as f:
			return f.read()

	def dispose(self) -> None:
		if self.scratch:
			shutil.rmtree(self.path.parent, ignore_errors=True)

	def __repr__(self) -> str:
		return f"(DocumentSlot {self.path}{' :scratch' if self.scratch else ''})"


# -----------------------------------------------------------------------------
#
# SYNCHRONIZER
#
# -----------------------------------------------------------------------------


def _raise(error: OSError) -> None:
	raise error


class IndexSynchronizer:
	"""Periodically rescans the root directory and publishes a listing
	document of all its regular files to the document slot. Each cycle is
	isolated: a failure is logged and the previously published document
	stays in place."""

	def __init__(
		self,
		root: str | Path,
		slot: DocumentSlot,
		*,
		interval: float = INTERVAL,
		prefix: str = "/",
	) -> None:
		self.root: Path = Path(root).absolute()
		self.slot: DocumentSlot = slot
		self.interval: float = interval
		self.prefix: str = prefix
		self.cycles: int = 0
		self.task: asyncio.Task[None] | None = None

	def scan(self) -> list[str] | None:
		"""Returns the sorted paths, relative to the root, of all the regular
		files in the root's subtree, or `None` when the root does not exist.
		Symbolic links are neither listed nor followed."""
		if not self.root.is_dir():
			return None
		slot: Path = self.slot.path
		res: list[str] = []
		for parent, dirs, files in os.walk(self.root, onerror=_raise):
			base = Path(parent)
			# Symlinked directories are never descended into anyway, we
			# just keep them out of the walk explicitly.
			dirs[:] = [_ for _ in dirs if not (base / _).is_symlink()]
			for name in files:
				path = base / name
				if path == slot or path.is_symlink() or not path.is_file():
					continue
				res.append(path.relative_to(self.root).as_posix())
		return sorted(res)

	def render(self, paths: list[str]) -> str:
		return renderListing(paths, prefix=self.prefix)

	def cycle(self) -> bool:
		"""Runs one scan/render/publish cycle, returning `True` when a new
		document was published."""
		self.cycles += 1
		try:
			paths = self.scan()
		except FileNotFoundError:
			if self.root.exists():
				warning("Index scan failed, an entry vanished", Root=str(self.root))
			else:
				debug("Root vanished during scan, skipping", Root=str(self.root))
			return False
		except OSError as e:
			warning(
				"Index scan failed",
				Root=str(self.root),
				Error=f"{e.__class__.__name__}: {e}",
			)
			return False
		if paths is None:
			debug("Root does not exist, skipping", Root=str(self.root))
			return False
		try:
			self.slot.publish(self.render(paths))
		except (OSError, UnicodeError) as e:
			warning(
				"Index publication failed",
				Slot=str(self.slot.path),
				Error=f"{e.__class__.__name__}: {e}",
			)
			return False
		logged(debug) and debug(
			"Index published", Files=len(paths), Cycle=self.cycles
		)
		return True

	async def run(self) -> None:
		"""Runs cycles forever, sequentially, waiting `interval` seconds
		between each. Only cancellation ends the loop."""
		while True:
			cycle = asyncio.ensure_future(asyncio.to_thread(self.cycle))
			try:
				await asyncio.shield(cycle)
			except asyncio.CancelledError:
				# A thread can't be interrupted: no cycle may still be
				# running once the task is done.
				await asyncio.wait([cycle])
				raise
			except Exception as e:
				# NOTE: Anything else is a bug, but it must not stop the loop
				exception(e, "Index synchronization cycle failed")
			await asyncio.sleep(self.interval)

	def start(self) -> asyncio.Task[None]:
		if self.task is None or self.task.done():
			self.task = asyncio.create_task(self.run())
			info(
				"Index synchronizer started",
				Root=str(self.root),
				Slot=str(self.slot.path),
				Interval=self.interval,
			)
		return self.task

	async def stop(self) -> None:
		task, self.task = self.task, None
		if task and not task.done():
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass
		info("Index synchronizer stopped", Cycles=self.cycles)


# EOF
