import os
import sys

import pytest
from saj import saj_fs
from saj.saj_effects import EffectContext, create_effect_handler
from saj.saj_interpreter import execute_sequence


@pytest.fixture
def ctx(tmp_path):
    return EffectContext(base_dir=str(tmp_path))


@pytest.fixture
def sample(tmp_path):
    p = tmp_path / "notes.txt"
    p.write_text("alpha\nBeta\ngamma\nbeta again\ndelta", encoding="utf-8")
    return p


@pytest.mark.asyncio
async def test_write_then_read_relative_to_base_dir(tmp_path, ctx):
    assert await saj_fs.write_file({"path": "sub/out.txt", "content": "hello"}, ctx) == "ok"
    assert (tmp_path / "sub" / "out.txt").read_text(encoding="utf-8") == "hello"
    assert await saj_fs.read_file({"path": "sub/out.txt"}, ctx) == "hello"


@pytest.mark.asyncio
async def test_read_absolute_path(sample):
    assert (await saj_fs.read_file({"path": str(sample)}, EffectContext())).startswith("alpha")


@pytest.mark.asyncio
async def test_read_missing_file_raises(ctx):
    with pytest.raises(FileNotFoundError):
        await saj_fs.read_file({"path": "nope.txt"}, ctx)


@pytest.mark.asyncio
async def test_read_requires_path(ctx):
    with pytest.raises(ValueError):
        await saj_fs.read_file({}, ctx)


@pytest.mark.asyncio
async def test_file_grep_is_case_insensitive(sample, ctx):
    out = await saj_fs.file_grep({"path": "notes.txt", "pattern": "beta"}, ctx)
    assert out["match_count"] == 2
    assert out["matches"] == [{"line": 2, "text": "Beta"}, {"line": 4, "text": "beta again"}]
    assert out["truncated"] is False
    assert out["path"] == "notes.txt"


@pytest.mark.asyncio
async def test_file_grep_invert_and_limit(sample, ctx):
    out = await saj_fs.file_grep({"path": "notes.txt", "pattern": "beta", "invert": True, "max_matches": 2}, ctx)
    assert [m["text"] for m in out["matches"]] == ["alpha", "gamma"]
    assert out["truncated"] is True


@pytest.mark.asyncio
async def test_file_stat(sample, ctx, tmp_path):
    out = await saj_fs.file_stat({"path": "notes.txt"}, ctx)
    assert out["size"] == sample.stat().st_size
    assert out["lines"] == 5
    assert out["isFile"] is True
    assert out["isDirectory"] is False
    assert out["modified"].endswith("+00:00")

    d = await saj_fs.file_stat({"path": str(tmp_path)}, ctx)
    assert d["isDirectory"] is True
    assert d["lines"] == 0


@pytest.mark.asyncio
async def test_file_slice(sample, ctx):
    out = await saj_fs.file_slice({"path": "notes.txt", "start": 2, "end": 3}, ctx)
    assert out["content"] == "Beta\ngamma"
    assert (out["start"], out["end"], out["total_lines"]) == (2, 3, 5)

    tail = await saj_fs.file_slice({"path": "notes.txt", "start": 4}, ctx)
    assert tail["content"] == "beta again\ndelta"
    assert tail["end"] == 5


@pytest.mark.asyncio
async def test_glob_walks_depth_first_and_skips_hidden(tmp_path, ctx):
    (tmp_path / "a.py").write_text("")
    (tmp_path / "b.txt").write_text("")
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "c.py").write_text("")
    (tmp_path / ".hidden").mkdir()
    (tmp_path / ".hidden" / "d.py").write_text("")

    out = await saj_fs.glob_files({"pattern": "*.py"}, ctx)
    assert out == ["./a.py", "./pkg/c.py"]

    sub = await saj_fs.glob_files({"pattern": "c.?y", "path": "pkg/"}, ctx)
    assert sub == ["pkg/c.py"]


@pytest.mark.asyncio
async def test_glob_caps_results(tmp_path, ctx):
    for i in range(saj_fs.GLOB_LIMIT + 5):
        (tmp_path / f"f{i:03d}.log").write_text("")
    out = await saj_fs.glob_files({"pattern": "*.log"}, ctx)
    assert len(out) == saj_fs.GLOB_LIMIT


@pytest.mark.asyncio
async def test_shell_captures_output(tmp_path, ctx):
    out = await saj_fs.shell({"cmd": sys.executable, "args": ["-c", "import os; print(os.getcwd())"]}, ctx)
    assert out["code"] == 0
    assert os.path.realpath(out["stdout"].strip()) == os.path.realpath(tmp_path)
    assert out["stderr"] == ""


@pytest.mark.asyncio
async def test_shell_nonzero_exit(ctx):
    out = await saj_fs.shell({"cmd": sys.executable, "args": ["-c", "import sys; sys.exit(3)"]}, ctx)
    assert out["code"] == 3


@pytest.mark.asyncio
async def test_file_effects_from_a_program(tmp_path):
    handler = create_effect_handler()
    handler.context.base_dir = str(tmp_path)
    programs = [
        {"type": "effect", "name": "write_file", "args": {"path": "x.txt", "content": {"type": "string", "value": "one\ntwo"}}},
        {"type": "effect", "name": "file_stat", "args": {"path": "x.txt"}, "bind": "st"},
        {"type": "effect", "name": "read_file", "args": {"path": "x.txt"}},
    ]
    out = await execute_sequence(programs, {}, handler)
    assert out.results[0] == "ok"
    assert out.env["st"]["lines"] == 2
    assert out.result == "one\ntwo"
