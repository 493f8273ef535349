from __future__ import annotations
import asyncio
import os
import re
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

GLOB_LIMIT = 100
DEFAULT_MAX_MATCHES = 100


def _resolve_path(path: Any, base_dir: Optional[str]) -> str:
    if not isinstance(path, str) or not path:
        raise ValueError(f"expected a file path, got {path!r}")
    # Home directory
    if path.startswith("~"):
        return os.path.expanduser(path)
    # Absolute filesystem root
    if os.path.isabs(path):
        return os.path.normpath(path)
    # Default: relative to the session base dir (or CWD)
    base = base_dir or os.getcwd()
    return os.path.normpath(os.path.join(base, path))


def _base_dir(context) -> Optional[str]:
    return getattr(context, "base_dir", None)


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


async def read_file(args: Dict[str, Any], context) -> str:
    path = _resolve_path(args.get("path"), _base_dir(context))
    return await asyncio.to_thread(_read_text, path)


async def write_file(args: Dict[str, Any], context) -> str:
    path = _resolve_path(args.get("path"), _base_dir(context))
    content = args.get("content")
    content = "" if content is None else str(content)

    def _write():
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

    await asyncio.to_thread(_write)
    return "ok"


async def shell(args: Dict[str, Any], context) -> Dict[str, Any]:
    """Runs cmd with args (no shell interpolation) and captures its output."""
    cmd = args.get("cmd")
    if not isinstance(cmd, str) or not cmd:
        raise ValueError("shell requires a 'cmd'")
    argv = [str(a) for a in (args.get("args") or [])]
    proc = await asyncio.create_subprocess_exec(
        cmd, *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=_base_dir(context),
    )
    stdout, stderr = await proc.communicate()
    return {
        "code": proc.returncode,
        "stdout": stdout.decode("utf-8", errors="replace"),
        "stderr": stderr.decode("utf-8", errors="replace"),
    }


async def file_grep(args: Dict[str, Any], context) -> Dict[str, Any]:
    """Greps a file line by line without handing the whole file to the program."""
    path = _resolve_path(args.get("path"), _base_dir(context))
    pattern = args.get("pattern") or ""
    invert = bool(args.get("invert"))
    max_matches = int(args.get("max_matches") or DEFAULT_MAX_MATCHES)

    content = await asyncio.to_thread(_read_text, path)
    regex = re.compile(pattern, re.IGNORECASE)

    matches: List[Dict[str, Any]] = []
    for i, line in enumerate(content.split("\n")):
        if len(matches) >= max_matches:
            break
        found = regex.search(line) is not None
        if found != invert:
            matches.append({"line": i + 1, "text": line})

    return {
        "path": args.get("path"),
        "pattern": pattern,
        "match_count": len(matches),
        "truncated": len(matches) >= max_matches,
        "matches": matches,
    }


async def file_stat(args: Dict[str, Any], context) -> Dict[str, Any]:
    path = _resolve_path(args.get("path"), _base_dir(context))
    st = await asyncio.to_thread(os.stat, path)
    is_file = os.path.isfile(path)

    lines = 0
    if is_file:
        content = await asyncio.to_thread(_read_text, path)
        lines = len(content.split("\n"))

    return {
        "path": args.get("path"),
        "size": st.st_size,
        "lines": lines,
        "isFile": is_file,
        "isDirectory": os.path.isdir(path),
        "modified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
    }


async def file_slice(args: Dict[str, Any], context) -> Dict[str, Any]:
    """Returns lines start..end, 1-indexed and inclusive."""
    path = _resolve_path(args.get("path"), _base_dir(context))
    start = int(args.get("start") or 1)
    end = int(args["end"]) if args.get("end") else None

    content = await asyncio.to_thread(_read_text, path)
    lines = content.split("\n")
    sliced = lines[start - 1:end]

    return {
        "path": args.get("path"),
        "start": start,
        "end": end or len(lines),
        "total_lines": len(lines),
        "content": "\n".join(sliced),
    }


def _glob_regex(pattern: str) -> re.Pattern:
    # '*' and '?' are wildcards; the match is a search within the file name, not anchored
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts))


def _walk(directory: str, display: str, regex: re.Pattern, out: List[str]) -> None:
    # Depth-first; hidden directories are skipped
    for name in sorted(os.listdir(directory)):
        if len(out) >= GLOB_LIMIT:
            return
        full = os.path.join(directory, name)
        shown = f"{display}/{name}"
        if os.path.isdir(full):
            if not name.startswith("."):
                _walk(full, shown, regex, out)
        elif os.path.isfile(full) and regex.search(name):
            out.append(shown)


async def glob_files(args: Dict[str, Any], context) -> List[str]:
    pattern = args.get("pattern") or "*"
    base = args.get("path") or "."
    root = _resolve_path(base, _base_dir(context))
    regex = _glob_regex(pattern)

    out: List[str] = []
    await asyncio.to_thread(_walk, root, base.rstrip("/") or "/", regex, out)
    return out[:GLOB_LIMIT]
