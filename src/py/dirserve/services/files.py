import asyncio
from pathlib import Path

from ..config import INTERVAL
from ..decorators import on
from ..http.model import HTTPRequest, HTTPResponse
from ..listing import renderError
from ..model import Service
from ..resolver import (
	Content,
	RenderedError,
	RequestResolver,
	Resolution,
	normalizePrefix,
)
from ..sync import DocumentSlot, IndexSynchronizer
from ..utils.logging import debug, exception, logged


class DirectoryService(Service):
	"""Serves the files of a local directory. Requests for the entry page
	get the listing document kept up to date by the index synchronizer,
	unless the directory has its own `index.html`."""

	def __init__(
		self,
		root: str | Path | None = None,
		*,
		prefix: str | None = "/",
		interval: float = INTERVAL,
		slot: DocumentSlot | None = None,
	):
		super().__init__()
		self.root: Path = Path(root or ".").absolute()
		self.mountPrefix: str = normalizePrefix(prefix)
		self.slot: DocumentSlot = slot or DocumentSlot.Temporary()
		self.synchronizer: IndexSynchronizer = IndexSynchronizer(
			self.root, self.slot, interval=interval, prefix=self.mountPrefix
		)
		self.resolver: RequestResolver = RequestResolver(
			self.root, self.slot, self.mountPrefix
		)

	async def start(self) -> None:
		# The first cycle completes before any request is served, so that
		# the entry page is there from the start. Like any other cycle, its
		# failure does not prevent the service from running.
		try:
			await asyncio.to_thread(self.synchronizer.cycle)
		except Exception as e:
			exception(e, "Initial index synchronization failed")
		self.synchronizer.start()

	async def stop(self) -> None:
		await self.synchronizer.stop()
		self.slot.dispose()

	def render(self, request: HTTPRequest, resolution: Resolution) -> HTTPResponse:
		"""Turns a resolution into a response. Errors are rendered as a
		listing-style page, with a success status."""
		match resolution:
			case Content(data=data, kind=kind):
				return request.respond(data, contentType=kind.contentType)
			case RenderedError(description=description, path=path):
				logged(debug) and debug(
					"Rendering error page",
					Path=request.path,
					Local=str(path) if path else None,
					Error=description,
				)
				return request.respondHTML(renderError(description))
			case _:
				raise ValueError(f"Unsupported resolution: {resolution}")

	@on(ANY="/{path:any}")
	async def serve(self, request: HTTPRequest, path: str) -> HTTPResponse:
		resolution = await asyncio.to_thread(self.resolver.resolve, request.path)
		return self.render(request, resolution)


# EOF
