import threading
import time
from pathlib import Path

import pytest

from labkit.mr.apps import indexer_map, indexer_reduce, wc_map, wc_reduce
from labkit.mr.cli import master_main, run_sequential, sequential_main, worker_main


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    Path("one.txt").write_text("the cat and the hat", encoding="utf-8")
    Path("two.txt").write_text("a cat, a dog; the end", encoding="utf-8")
    return tmp_path


def test_run_sequential_word_count(workdir):
    Path("small.txt").write_text("the cat the", encoding="utf-8")
    path = run_sequential(wc_map, wc_reduce, ["small.txt"], "out.txt")
    assert path == Path("out.txt")
    assert path.read_text(encoding="utf-8") == "cat 1\nthe 2\n"


def test_run_sequential_keys_sorted_and_unique(workdir):
    path = run_sequential(indexer_map, indexer_reduce, ["one.txt", "two.txt"], "out.txt")
    keys = [line.split(" ")[0] for line in path.read_text(encoding="utf-8").splitlines()]
    assert keys == sorted(set(keys))
    assert "cat 2 one.txt,two.txt" in path.read_text(encoding="utf-8").splitlines()


def test_run_sequential_missing_file(workdir):
    with pytest.raises(FileNotFoundError):
        run_sequential(wc_map, wc_reduce, ["missing.txt"], "out.txt")


def test_sequential_main_writes_output(workdir):
    assert sequential_main(["wc", "one.txt", "two.txt"]) == 0
    run_sequential(wc_map, wc_reduce, ["one.txt", "two.txt"], "expected.txt")
    assert Path("mr-out-0").read_text(encoding="utf-8") == Path("expected.txt").read_text(
        encoding="utf-8"
    )


def test_sequential_main_accepts_plugin_path(workdir):
    assert sequential_main(["../mrapps/wc.so", "one.txt"]) == 0
    assert Path("mr-out-0").exists()


def test_sequential_main_usage(workdir, capsys):
    assert sequential_main(["wc"]) == 1
    assert "Usage" in capsys.readouterr().err


def test_sequential_main_unknown_app(workdir, capsys):
    assert sequential_main(["nosuchapp", "one.txt"]) == 1
    assert "nosuchapp" in capsys.readouterr().err


def test_sequential_main_missing_input(workdir, capsys):
    assert sequential_main(["wc", "missing.txt"]) == 1
    assert "cannot open missing.txt" in capsys.readouterr().err


def test_master_main_usage(capsys):
    assert master_main([]) == 1
    assert "Usage: mrmaster" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [[], ["wc", "extra"]])
def test_worker_main_usage(argv, capsys):
    assert worker_main(argv) == 1
    assert "Usage: mrworker" in capsys.readouterr().err


def test_worker_main_unknown_app(capsys):
    assert worker_main(["nosuchapp"]) == 1
    assert "nosuchapp" in capsys.readouterr().err


def test_worker_main_without_master(workdir, capsys):
    assert worker_main(["wc"]) == 1
    assert "dialing" in capsys.readouterr().err


def test_master_and_worker_match_sequential(workdir):
    results = []
    master = threading.Thread(
        target=lambda: results.append(master_main(["one.txt", "two.txt"])), daemon=True
    )
    master.start()
    deadline = time.monotonic() + 10
    while not Path("mr-socket").exists():
        assert time.monotonic() < deadline
        time.sleep(0.02)

    assert worker_main(["wc"]) == 0
    master.join(timeout=30)
    assert results == [0]
    assert not Path("mr-socket").exists()

    lines = []
    for path in sorted(Path(".").glob("mr-out-*")):
        lines.extend(path.read_text(encoding="utf-8").splitlines())
    run_sequential(wc_map, wc_reduce, ["one.txt", "two.txt"], "expected.txt")
    expected = Path("expected.txt").read_text(encoding="utf-8").splitlines()
    assert sorted(lines) == sorted(expected)