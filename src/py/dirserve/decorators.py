from typing import Any, Callable, ClassVar, TypeVar, Union, cast

T = TypeVar("T")


class Meta:
    """Defines the attributes used by decorators"""

    ON: ClassVar[str] = "_dirserve_on"
    # Methods registered under `ANY` match whatever the request method is.
    ANY: ClassVar[str] = "ANY"

    @staticmethod
    def Get(scope: Any) -> dict[str, Any]:
        """Returns the dictionary of meta attributes for the given value."""
        if hasattr(scope, "__func__"):
            scope = scope.__func__
        if not hasattr(scope, "__dict__"):
            raise RuntimeError(f"Metadata cannot be attached to object: {scope}")
        return cast(dict[str, Any], scope.__dict__)


def on(**methods: Union[str, list[str], tuple[str, ...]]) -> Callable[[T], T]:
    """The @on decorator wraps an existing method and indicates that it will
    be used to process an HTTP request.

    The @on decorator takes HTTP methods as keyword arguments (`GET`,
    `GET_HEAD`, or `ANY` for all methods), each given either a string or a
    list of strings describing an URI pattern (see `Route`) that when
    matched, will trigger the method.

    The decorated method must take a `request` argument, as well as the same
    arguments as those used in the pattern.

    For instance:

    >    @on(GET='/files/{path:any}')

    implies that the wrapped method is like

    >    def read(self, request, path):
    >        return request.respond(...)
    """

    def decorator(function: T) -> T:
        meta = Meta.Get(function)
        v = meta.setdefault(Meta.ON, [])
        for http_methods, url in list(methods.items()):
            urls = (url,) if isinstance(url, str) else url
            for http_method in http_methods.upper().split("_"):
                for _ in urls:
                    v.append((http_method, _))
        return function

    return decorator


# EOF
