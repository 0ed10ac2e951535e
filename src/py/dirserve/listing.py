from typing import Iterable
from urllib.parse import quote

from .utils.htmpl import H, Node, html, raw

# --
# The listing document and the error document share the same frame: a fixed
# preamble (up to the opening of the list), one list item per entry, and a
# fixed suffix (closing the list and the page).

LISTING_CSS: str = """
:root {
    font-family: sans-serif;
    font-size: 14px;
    line-height: 1.35em;
    padding: 20px;
    background: #F0F0F0;
}
ul {
    padding: 0px 20px;
    margin: 1.25em 0em;
    list-style-type: "\\1F4C4";
}
li {
    padding: 0px 10px;
    margin: 0.5em 0em;
}
pre {
    white-space: pre-wrap;
}
"""


def href(path: str, prefix: str = "/") -> str:
	"""Returns the absolute, percent-encoded link to the relative `path`,
	taking into account the prefix the server is mounted under. Names that
	are not valid UTF-8 are encoded byte for byte."""
	base = prefix.strip("/")
	link = f"/{base}/{path}" if base else f"/{path}"
	return quote(link, errors="surrogateescape")


def label(path: str) -> str:
	"""Returns the displayable text for the given path."""
	return path.encode("utf8", "surrogateescape").decode("utf8", "replace")


def document(title: str, items: Iterable[Node]) -> str:
	return "".join(
		html(
			H.html(
				H.head(
					H.meta(charset="utf-8"),
					H.meta(
						name="viewport",
						content="width=device-width, initial-scale=1.0",
					),
					H.title(title),
					H.style(raw(LISTING_CSS)),
				),
				H.body(H.ul(list(items))),
			),
			doctype="html",
		)
	)


def renderListing(paths: Iterable[str], *, prefix: str = "/") -> str:
	"""Renders the listing document, with one link per relative path, in
	the order given."""
	return document(
		"Index", (H.li(H.a(label(_), href=href(_, prefix))) for _ in paths)
	)


def renderError(description: str) -> str:
	"""Renders the listing-style document that embeds an error description."""
	return document("Error", [H.li(H.pre(H.code(label(description))))])


# EOF
