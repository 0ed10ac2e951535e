from .http.model import HTTPRequest, HTTPResponse, HTTPRequestError  # NOQA: F401
from .decorators import on  # NOQA: F401
from .model import Application, Service  # NOQA: F401
from .resolver import Content, ContentKind, RenderedError, RequestResolver  # NOQA: F401
from .sync import DocumentSlot, IndexSynchronizer  # NOQA: F401
from .services.files import DirectoryService  # NOQA: F401
from .server import run  # NOQA: F401


# EOF
