import re
from inspect import iscoroutine
from typing import (
    Any,
    Callable,
    ClassVar,
    NamedTuple,
    Optional,
    Pattern,
)

from .decorators import Meta
from .http.model import HTTPRequest, HTTPRequestError, HTTPResponse
from .utils.logging import debug


async def awaited(value: Any) -> Any:
    if iscoroutine(value):
        return await value
    else:
        return value


# -----------------------------------------------------------------------------
#
# ROUTE
#
# -----------------------------------------------------------------------------
#
# Routes represent collections/sets of paths that can be matched. Typically
# routes are made of chunks separated by a `/`.


class TextChunk(NamedTuple):
    """A raw text chunk"""

    text: str


class ParameterChunk(NamedTuple):
    """A parameterizable chunk, where the chunk must match the given expression."""

    name: str
    expr: str


TChunk = TextChunk | ParameterChunk


class Route:
    """Parses a route where template expressions are like `{name}` or
    `{name:type}`. Routes are assigned handlers, they are then registered
    in the dispatcher to match requests."""

    RE_TEMPLATE: ClassVar[Pattern[str]] = re.compile(
        r"\{(?P<name>[\w][_\w\d]*)(:(?P<type>[^}]+))?\}"
    )

    PATTERNS: ClassVar[dict[str, str]] = {
        "segment": r"[^/]+",
        "any": r".*",
    }

    @classmethod
    def Parse(cls, expression: str) -> list[TChunk]:
        """Parses routes expressed as strings where patterns are denoted
        as `{name}` or `{name:pattern}`"""
        chunks: list[TChunk] = []
        offset: int = 0
        for match in cls.RE_TEMPLATE.finditer(expression):
            chunks.append(TextChunk(re.escape(expression[offset : match.start()])))
            name: str = match.group("name")
            pattern: str = (match.group("type") or "segment").lower()
            if pattern not in cls.PATTERNS:
                raise ValueError(
                    f"Route pattern '{pattern}' is not registered, pick one of: {', '.join(sorted(cls.PATTERNS.keys()))}"
                )
            chunks.append(ParameterChunk(name, cls.PATTERNS[pattern]))
            offset = match.end()
        chunks.append(TextChunk(re.escape(expression[offset:])))
        return chunks

    def __init__(self, text: str, handler: Optional["Handler"] = None):
        self.text: str = text
        self.chunks: list[TChunk] = self.Parse(text)
        self.params: dict[str, ParameterChunk] = {
            _.name: _ for _ in self.chunks if isinstance(_, ParameterChunk)
        }
        self.handler: Handler | None = handler
        self.regexp: Pattern[str] = re.compile(f"^{self.toRegExp()}$")

    def toRegExp(self) -> str:
        return "".join(
            chunk.text
            if isinstance(chunk, TextChunk)
            else f"(?P<{chunk.name}>{chunk.expr})"
            for chunk in self.chunks
        )

    def match(self, path: str) -> dict[str, str] | None:
        matches = self.regexp.match(path)
        return {k: matches.group(k) for k in self.params} if matches else None

    def __repr__(self) -> str:
        return f"(Route \"{self.toRegExp()}\" ({' '.join(_ for _ in self.params)}))"


# -----------------------------------------------------------------------------
#
# HANDLER
#
# -----------------------------------------------------------------------------


class Handler:
    """A handler wraps a function and maps it to paths for HTTP methods.
    The handler is used by the dispatchers to match a request."""

    @classmethod
    def Get(cls, value: Any) -> Optional["Handler"]:
        return (
            Handler(functor=value, methods=getattr(value, Meta.ON))
            if callable(value) and hasattr(value, Meta.ON)
            else None
        )

    def __init__(
        self,
        functor: Callable[..., Any],
        methods: list[tuple[str, str]],
    ):
        self.functor = functor
        self.methods: dict[str, list[str]] = {}
        for method, path in methods:
            self.methods.setdefault(method, []).append(path)

    async def __call__(
        self, request: HTTPRequest, params: dict[str, Any]
    ) -> HTTPResponse:
        try:
            return await awaited(self.functor(request, **params))
        except HTTPRequestError as error:
            return request.respondError(
                error.message,
                error.contentType or "text/plain",
                status=error.status or 500,
            )

    def __repr__(self) -> str:
        methods = " ".join(
            f'({k} {" ".join(repr(_) for _ in v)})' for k, v in self.methods.items()
        )
        return f"(Handler ({methods}) '{self.functor}')"


# -----------------------------------------------------------------------------
#
# DISPATCHER
#
# -----------------------------------------------------------------------------


class Dispatcher:
    """A dispatcher registers handlers that respond to HTTP methods
    on a given path/URI."""

    def __init__(self) -> None:
        self.routes: dict[str, list[Route]] = {}

    def register(self, handler: Handler, prefix: str | None = None) -> "Dispatcher":
        """Registers the handlers and their routes, adding the prefix if given."""
        for method, paths in handler.methods.items():
            for path in paths:
                path = f"{prefix.rstrip('/')}{path}" if prefix else path
                path = f"/{path}" if not path.startswith("/") else path
                route: Route = Route(path, handler)
                debug("Registered route", Method=method, Path=path)
                self.routes.setdefault(method, []).append(route)
        return self

    def match(
        self, method: str, path: str
    ) -> tuple[Route | None, dict[str, Any] | None]:
        """Matches a given `method` and `path` with the registered routes,
        returning the first matching route and its parameters. Routes
        registered for the method take precedence over routes registered
        for `ANY`."""
        for routes in (self.routes.get(method), self.routes.get(Meta.ANY)):
            for route in routes or ():
                params = route.match(path)
                if params is not None:
                    return route, params
        return None, None


# EOF
