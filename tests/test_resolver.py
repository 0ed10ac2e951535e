import html
import os
import re
from pathlib import Path

import pytest

from dirserve.resolver import (
	Content,
	ContentKind,
	RenderedError,
	RequestResolver,
	classify,
	normalizePrefix,
)
from dirserve.sync import DocumentSlot, IndexSynchronizer

RE_LINK = re.compile(r'<li><a href="([^"]*)">([^<]*)</a></li>')

FILES: dict[str, bytes] = {
	"style.css": b"body { color: red; }",
	"app.js": b"console.log('hi');",
	"mod.wasm": b"\x00asm\x01\x00\x00\x00",
	"anything-else": b"plain \xff bytes",
	"docs/guide.md": b"# Guide",
	"site/index.html": b"<h1>Site</h1>",
}


@pytest.fixture
def root(tmp_path: Path) -> Path:
	res = tmp_path / "root"
	for name, data in FILES.items():
		(res / name).parent.mkdir(parents=True, exist_ok=True)
		(res / name).write_bytes(data)
	return res


@pytest.fixture
def slot(tmp_path: Path, root: Path) -> DocumentSlot:
	(tmp_path / "slot").mkdir()
	res = DocumentSlot(tmp_path / "slot" / "index.html")
	assert IndexSynchronizer(root, res).cycle()
	return res


@pytest.fixture
def resolver(root: Path, slot: DocumentSlot) -> RequestResolver:
	return RequestResolver(root, slot)


@pytest.mark.parametrize(
	"name,kind",
	[
		("style.css", ContentKind.CSS),
		("app.js", ContentKind.JavaScript),
		("mod.wasm", ContentKind.WASM),
		("anything-else", ContentKind.HTML),
		("notes.txt", ContentKind.HTML),
		("STYLE.CSS", ContentKind.CSS),
		("archive.js.map", ContentKind.HTML),
	],
)
def test_classify(name: str, kind: ContentKind):
	assert classify(name) is kind


def test_content_types():
	assert ContentKind.CSS.contentType == "text/css"
	assert ContentKind.JavaScript.contentType == "application/javascript"
	assert ContentKind.WASM.contentType == "application/wasm"
	assert ContentKind.HTML.contentType == "text/html"


@pytest.mark.parametrize("name", ["style.css", "app.js", "mod.wasm", "anything-else"])
def test_files_are_read_verbatim(resolver: RequestResolver, root: Path, name: str):
	res = resolver.resolve(f"/{name}")
	assert isinstance(res, Content)
	assert res.data == FILES[name]
	assert res.kind is classify(name)
	assert res.path == root / name


@pytest.mark.parametrize("path", ["", "/", "/index.html", "index.html"])
def test_index_resolves_to_the_listing(
	resolver: RequestResolver, slot: DocumentSlot, path: str
):
	assert resolver.target(path) == slot.path
	res = resolver.resolve(path)
	assert isinstance(res, Content)
	assert res.kind is ContentKind.HTML
	assert res.data == slot.read()
	assert b'<a href="/style.css">style.css</a>' in res.data


def test_index_htm_is_not_an_alias(resolver: RequestResolver, root: Path):
	assert resolver.target("/index.htm") == root / "index.htm"
	assert isinstance(resolver.resolve("/index.htm"), RenderedError)


def test_hand_authored_index_takes_precedence(resolver: RequestResolver, root: Path):
	(root / "index.html").write_bytes(b"<h1>Home</h1>")
	for path in ("/", "/index.html"):
		res = resolver.resolve(path)
		assert isinstance(res, Content)
		assert res.data == b"<h1>Home</h1>"


def test_directory_resolves_to_its_index(resolver: RequestResolver, root: Path):
	res = resolver.resolve("/site")
	assert isinstance(res, Content)
	assert res.data == b"<h1>Site</h1>"
	assert res.path == root / "site" / "index.html"
	assert resolver.resolve("/site/") == res


def test_directory_without_index_is_an_error(resolver: RequestResolver, root: Path):
	res = resolver.resolve("/docs")
	assert isinstance(res, RenderedError)
	assert res.path == root / "docs" / "index.html"
	assert "No such file or directory" in res.description


def test_missing_file_is_an_error(resolver: RequestResolver, root: Path):
	res = resolver.resolve("/nope.css")
	assert isinstance(res, RenderedError)
	assert "No such file or directory" in res.description
	assert str(root / "nope.css") in res.description


@pytest.mark.skipif(
	hasattr(os, "geteuid") and os.geteuid() == 0,
	reason="permissions are not enforced for root",
)
def test_unreadable_file_is_an_error(resolver: RequestResolver, root: Path):
	(root / "locked.txt").write_bytes(b"secret")
	(root / "locked.txt").chmod(0)
	try:
		res = resolver.resolve("/locked.txt")
		assert isinstance(res, RenderedError)
		assert "Permission denied" in res.description
	finally:
		(root / "locked.txt").chmod(0o644)


def test_missing_listing_is_an_error(root: Path, tmp_path: Path):
	resolver = RequestResolver(root, DocumentSlot(tmp_path / "none" / "index.html"))
	assert isinstance(resolver.resolve("/"), RenderedError)


def test_request_path_is_decoded(resolver: RequestResolver, root: Path):
	(root / "with space.css").write_bytes(b"a{}")
	res = resolver.resolve("/with%20space.css?v=1")
	assert isinstance(res, Content)
	assert res.data == b"a{}"
	assert res.kind is ContentKind.CSS


def test_paths_cannot_escape_the_root(resolver: RequestResolver, tmp_path: Path):
	(tmp_path / "outside.txt").write_bytes(b"nope")
	for path in ("/../outside.txt", "/docs/../../outside.txt", "/%2e%2e/outside.txt"):
		res = resolver.resolve(path)
		assert isinstance(res, RenderedError)
		assert "outside of the served directory" in res.description
	# Dot segments that stay within the root are fine
	assert isinstance(resolver.resolve("/docs/../app.js"), Content)


@pytest.mark.parametrize(
	"prefix,expected",
	[(None, "/"), ("", "/"), ("/", "/"), ("docs", "/docs"), ("/docs/", "/docs")],
)
def test_normalize_prefix(prefix: str | None, expected: str):
	assert normalizePrefix(prefix) == expected


def test_prefix_is_stripped(root: Path, slot: DocumentSlot):
	resolver = RequestResolver(root, slot, "/static/")
	assert resolver.target("/static") == slot.path
	assert resolver.target("/static/") == slot.path
	assert resolver.target("/static/index.html") == slot.path
	res = resolver.resolve("/static/app.js")
	assert isinstance(res, Content)
	assert res.data == FILES["app.js"]


def test_paths_outside_the_prefix_are_errors(root: Path, slot: DocumentSlot):
	resolver = RequestResolver(root, slot, "/static")
	for path in ("/app.js", "/staticfiles/app.js", "/"):
		res = resolver.resolve(path)
		assert isinstance(res, RenderedError)
		assert "outside of prefix" in res.description


def test_null_bytes_are_errors(resolver: RequestResolver):
	for path in ("/a%00b", "/style.css%00.js", "/docs/%00"):
		res = resolver.resolve(path)
		assert isinstance(res, RenderedError)
		assert "null byte" in res.description


def follow(root: Path, slot: DocumentSlot, prefix: str = "/") -> dict[str, bytes]:
	"""Publishes the listing and resolves every link it contains, returning
	the content obtained for each label."""
	assert IndexSynchronizer(root, slot, prefix=prefix).cycle()
	resolver = RequestResolver(root, slot, prefix)
	res: dict[str, bytes] = {}
	for link, text in RE_LINK.findall(slot.read().decode("utf8")):
		content = resolver.resolve(html.unescape(link))
		assert isinstance(content, Content), content
		res[html.unescape(text)] = content.data
	return res


@pytest.mark.parametrize("prefix", ["/", "/my files"])
def test_listed_links_resolve_to_their_file(
	root: Path, slot: DocumentSlot, prefix: str
):
	names = ["a%41.txt", "a#b.css", "what?.js", "with space.txt", "café & co.txt"]
	for name in names:
		(root / name).write_bytes(name.encode("utf8"))
	links = follow(root, slot, prefix)
	for name in names:
		assert links[name] == name.encode("utf8")
	assert links["docs/guide.md"] == FILES["docs/guide.md"]


def test_non_utf8_names_resolve_to_their_file(root: Path, slot: DocumentSlot):
	try:
		with open(os.path.join(os.fsencode(root), b"bad\xff.txt"), "wb") as f:
			f.write(b"bytes")
	except OSError:
		pytest.skip("the file system only accepts UTF-8 names")
	assert follow(root, slot)["bad\ufffd.txt"] == b"bytes"


# EOF
