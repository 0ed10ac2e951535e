from pathlib import Path

import pytest

from dirserve import __main__ as cli
from dirserve import config


def test_defaults():
	options = cli.parser().parse_args([])
	assert options.root == "."
	assert options.prefix == config.PREFIX
	assert options.port == config.PORT
	assert options.host == config.HOST
	assert options.interval == config.INTERVAL
	assert options.verbose is False


def test_options():
	options = cli.parser().parse_args(
		["site", "--prefix", "/docs", "--port", "8080", "--interval", "0.5", "-v"]
	)
	assert options.root == "site"
	assert options.prefix == "/docs"
	assert options.port == 8080
	assert options.interval == 0.5
	assert options.verbose is True
	assert cli.parser().parse_args(["--no-log-requests"]).logRequests is False


@pytest.mark.parametrize(
	"args",
	[
		["--unknown"],
		["--port", "http"],
		["--port", "70000"],
		["--port", "-1"],
		["--interval", "0"],
		["--interval", "soon"],
		["a", "b"],
	],
)
def test_invalid_arguments_are_fatal(args: list[str], capsys: pytest.CaptureFixture):
	with pytest.raises(SystemExit) as e:
		cli.parser().parse_args(args)
	assert e.value.code == 2
	assert "usage: dirserve" in capsys.readouterr().err


def test_root_must_be_a_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
	started: list[object] = []
	monkeypatch.setattr(cli, "run", lambda *args, **kwargs: started.append(args))
	(tmp_path / "file.txt").write_text("not a directory")
	for root in (tmp_path / "missing", tmp_path / "file.txt"):
		with pytest.raises(SystemExit) as e:
			cli.main([str(root)])
		assert e.value.code == 2
	assert started == []


def test_main_runs_the_directory_service(
	tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
	calls: list[tuple[tuple, dict]] = []
	monkeypatch.setattr(cli, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
	assert cli.main([str(tmp_path), "--prefix", "/files", "--port", "9000"]) == 0
	((args, kwargs),) = calls
	(service,) = args
	assert service.root == tmp_path.absolute()
	assert service.resolver.prefix == "/files"
	assert kwargs["port"] == 9000
	service.slot.dispose()


# EOF
