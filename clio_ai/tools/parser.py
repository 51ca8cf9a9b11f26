# tools/parser.py
"""
Turn raw model text into an ordered list of file Actions.

Models are asked for JSON ({"tools": [...]}) but in practice they wrap it in
prose, put it in ```json fences, or answer with fenced directive blocks:

    ```create src/app.py
    print("hi")
    ```

    ```edit src/app.py
    <<<<<<< SEARCH
    print("hi")
    =======
    print("hello")
    >>>>>>> REPLACE
    ```

Anything that looks like a directive but can't be turned into an Action is
reported as Skipped; the rest of the response is still used. Nothing here
touches the filesystem.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from loguru import logger

from clio_ai.errors import ParseError
from clio_ai.tools.actions import (
    Action,
    CreateDirectory,
    CreateFile,
    DeleteFile,
    EditFile,
    Hunk,
    ListDirectory,
    ReadFile,
    Skipped,
)

OP_ALIASES = {
    "create": "create", "create_file": "create", "write": "create", "write_file": "create",
    "mkdir": "mkdir", "create_folder": "mkdir", "create_dir": "mkdir", "create_directory": "mkdir",
    "edit": "edit", "edit_file": "edit", "update_file": "edit", "replace_in_file": "edit",
    "delete": "delete", "delete_file": "delete", "remove": "delete", "rm": "delete",
    "read": "read", "read_file": "read", "cat": "read",
    "list": "list", "list_dir": "list", "list_files": "list", "list_directory": "list", "ls": "list",
}

_OPEN_FENCE_RX = re.compile(r"^[ \t]{0,3}(?P<ticks>`{3,})[ \t]*(?P<info>[^`\n]*)$")
_CLOSE_FENCE_RX = re.compile(r"^[ \t]{0,3}(?P<ticks>`{3,})[ \t]*$")
_SEARCH_RX = re.compile(r"^<{5,}[ \t]*SEARCH[ \t]*$")
_DIVIDER_RX = re.compile(r"^={5,}[ \t]*$")
_REPLACE_RX = re.compile(r"^>{5,}[ \t]*REPLACE[ \t]*$")
_ACTION_KEY_RX = re.compile(r'"action"\s*:')
_FILENAME_RX = re.compile(r"^[\w./-]*\w\.[A-Za-z0-9]+$")
_OVERWRITE_FLAGS = {"overwrite", "--overwrite", "force", "--force"}

EXCERPT_LEN = 120


class _Malformed(Exception):
    pass


@dataclass(frozen=True)
class ParsedResponse:
    actions: Tuple[Action, ...] = ()
    skipped: Tuple[Skipped, ...] = ()
    reply: Optional[str] = None

    @property
    def has_directives(self) -> bool:
        return bool(self.actions or self.skipped)


# ---------------- segments ----------------

@dataclass
class _Prose:
    text: str


@dataclass
class _Fence:
    info: str
    body: str
    closed: bool
    heading: str = ""

    def render(self) -> str:
        return f"```{self.info}\n{self.body}\n```" if self.closed else f"```{self.info}\n{self.body}"


def _split_segments(text: str) -> List[Any]:
    """Split text into prose and fenced-block segments, in order."""
    lines = text.split("\n")
    segments: List[Any] = []
    prose: List[str] = []
    i = 0
    while i < len(lines):
        m = _OPEN_FENCE_RX.match(lines[i])
        if not m:
            prose.append(lines[i])
            i += 1
            continue
        width = len(m.group("ticks"))
        body: List[str] = []
        closed = False
        j = i + 1
        while j < len(lines):
            c = _CLOSE_FENCE_RX.match(lines[j])
            if c and len(c.group("ticks")) >= width:
                closed = True
                break
            body.append(lines[j])
            j += 1
        heading = next((ln for ln in reversed(prose) if ln.strip()), "")
        if prose:
            segments.append(_Prose("\n".join(prose)))
            prose = []
        segments.append(_Fence(m.group("info").strip(), "\n".join(body), closed, heading))
        i = j + 1
    if prose:
        segments.append(_Prose("\n".join(prose)))
    return segments


def _json_candidates(text: str) -> List[Tuple[int, int]]:
    """Spans of balanced {...} / [...] regions, string-aware, outermost only."""
    spans: List[Tuple[int, int]] = []
    i = 0
    n = len(text)
    while i < n:
        if text[i] not in "{[":
            i += 1
            continue
        stack = [text[i]]
        in_string = False
        escape = False
        j = i + 1
        end = None
        while j < n:
            c = text[j]
            if in_string:
                if escape:
                    escape = False
                elif c == "\\":
                    escape = True
                elif c == '"':
                    in_string = False
            elif c == '"':
                in_string = True
            elif c in "{[":
                stack.append(c)
            elif c in "}]":
                opener = stack.pop()
                if (opener, c) not in (("{", "}"), ("[", "]")):
                    break
                if not stack:
                    end = j + 1
                    break
            j += 1
        if end is None:
            i += 1
            continue
        spans.append((i, end))
        i = end
    return spans


def _excerpt(text: str) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= EXCERPT_LEN else flat[:EXCERPT_LEN] + "…"


def _clean_path(raw: Any) -> str:
    if not isinstance(raw, str):
        return ""
    return raw.strip().strip("`'\"").strip()


def _filename_from_heading(line: str) -> Optional[str]:
    """Match **name.ext**, `name.ext`, '### name.ext' or 'name.ext:' headings."""
    line = line.strip().lstrip("#").strip()
    if not line:
        return None

    def ok(name: str) -> Optional[str]:
        name = name.strip().strip("*`").strip()
        return name if _FILENAME_RX.match(name) else None

    if line.startswith("**") and line.endswith("**") and len(line) > 4:
        return ok(line[2:-2])
    if line.startswith("`") and line.endswith("`") and "```" not in line:
        return ok(line.strip("`"))
    for sep in (" (", " -", ":"):
        pos = line.find(sep)
        if pos > 0:
            found = ok(line[:pos])
            if found:
                return found
    return ok(line)


# ---------------- directive decoding ----------------

def _parse_hunks(body: str) -> Tuple[Hunk, ...]:
    hunks: List[Hunk] = []
    state = "outside"
    search: List[str] = []
    replace: List[str] = []
    for line in body.split("\n"):
        if state == "outside":
            if _SEARCH_RX.match(line):
                state, search, replace = "search", [], []
            elif line.strip():
                raise _Malformed("text outside SEARCH/REPLACE sections")
        elif state == "search":
            if _DIVIDER_RX.match(line):
                state = "replace"
            elif _SEARCH_RX.match(line) or _REPLACE_RX.match(line):
                raise _Malformed("SEARCH section without ======= divider")
            else:
                search.append(line)
        else:
            if _REPLACE_RX.match(line):
                if not "".join(search).strip():
                    raise _Malformed("empty SEARCH section")
                hunks.append(Hunk("\n".join(search), "\n".join(replace)))
                state = "outside"
            elif _SEARCH_RX.match(line) or _DIVIDER_RX.match(line):
                raise _Malformed("REPLACE section not closed with >>>>>>> REPLACE")
            else:
                replace.append(line)
    if state != "outside":
        raise _Malformed("unterminated SEARCH/REPLACE section")
    return tuple(hunks)


def _has_patch_markers(body: str) -> bool:
    return any(_SEARCH_RX.match(line) for line in body.split("\n"))


def _action_from_fence(op: str, rest: List[str], body: str) -> Action:
    flags = {t.lower() for t in rest[1:]}
    path = _clean_path(rest[0]) if rest else ""
    if path.lower().startswith("path="):
        path = _clean_path(path[5:])
    if op == "list":
        return ListDirectory(path or ".")
    if not path:
        raise _Malformed(f"'{op}' block has no path")
    if op == "create":
        return CreateFile(path, body, overwrite=bool(flags & _OVERWRITE_FLAGS))
    if op == "mkdir":
        return CreateDirectory(path)
    if op == "edit":
        if _has_patch_markers(body):
            return EditFile(path, patch=_parse_hunks(body))
        return EditFile(path, content=body)
    if op == "delete":
        return DeleteFile(path)
    return ReadFile(path)


def _action_from_mapping(obj: Any) -> Action:
    if not isinstance(obj, dict):
        raise _Malformed("tool entry is not an object")
    name = obj.get("action")
    if not isinstance(name, str) or not name.strip():
        raise _Malformed("directive has no action name")
    op = OP_ALIASES.get(name.strip().lower())
    if op is None:
        raise _Malformed(f"unsupported action '{name}'")

    path = _clean_path(obj.get("path", obj.get("file")))
    if op == "list":
        return ListDirectory(path or ".")
    if not path:
        raise _Malformed(f"'{name}' directive has no path")

    if op == "create":
        content = obj.get("content", "")
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise _Malformed(f"'{name}' content must be a string")
        return CreateFile(path, content, overwrite=obj.get("overwrite") is True)
    if op == "mkdir":
        return CreateDirectory(path)
    if op == "edit":
        return _edit_from_mapping(name, path, obj)
    if op == "delete":
        return DeleteFile(path)
    return ReadFile(path)


def _edit_from_mapping(name: str, path: str, obj: dict) -> EditFile:
    content = obj.get("content")
    if isinstance(content, str):
        if _has_patch_markers(content):
            return EditFile(path, patch=_parse_hunks(content))
        return EditFile(path, content=content)

    raw_edits = obj.get("edits")
    if raw_edits is None:
        raw_edits = [obj]
    if not isinstance(raw_edits, list) or not raw_edits:
        raise _Malformed(f"'{name}' edits must be a non-empty list")

    hunks: List[Hunk] = []
    for edit in raw_edits:
        if not isinstance(edit, dict):
            raise _Malformed(f"'{name}' edit entry is not an object")
        search = edit.get("find", edit.get("search"))
        replace = edit.get("replace", "")
        if not isinstance(search, str) or not search:
            raise _Malformed(f"'{name}' needs either content or find/replace")
        if not isinstance(replace, str):
            raise _Malformed(f"'{name}' replace must be a string")
        hunks.append(Hunk(search, replace))
    return EditFile(path, patch=tuple(hunks))


# ---------------- collector ----------------

@dataclass
class _Collector:
    actions: List[Action] = field(default_factory=list)
    skipped: List[Skipped] = field(default_factory=list)
    pieces: List[str] = field(default_factory=list)
    responses: int = 0

    def skip(self, reason: str, raw: str) -> None:
        logger.warning("parser: skipped directive ({}): {}", reason, _excerpt(raw))
        self.skipped.append(Skipped(reason, _excerpt(raw)))

    def add_entry(self, entry: Any) -> None:
        try:
            self.actions.append(_action_from_mapping(entry))
        except _Malformed as e:
            self.skip(str(e), json.dumps(entry) if not isinstance(entry, str) else entry)

    def take_json(self, value: Any) -> Optional[str]:
        """
        Consume a decoded JSON value if it is a directive structure.
        Returns the reply text to put in its place ("" for pure tool calls),
        or None when the value is ordinary JSON.
        """
        if isinstance(value, dict):
            if "tools" not in value and "action" not in value and "response" not in value:
                return None
            if "action" in value:
                self.add_entry(value)
            if "tools" in value:
                tools = value.get("tools")
                if isinstance(tools, list):
                    for entry in tools:
                        self.add_entry(entry)
                elif tools is not None:
                    self.skip("'tools' must be a list", json.dumps(value))
            reply = value.get("response")
            if isinstance(reply, str) and reply.strip():
                self.responses += 1
                return reply.strip()
            return ""
        if isinstance(value, list) and value and all(isinstance(v, dict) for v in value):
            if not any("action" in v for v in value):
                return None
            for entry in value:
                self.add_entry(entry)
            return ""
        return None

    def take_prose(self, text: str) -> None:
        out: List[str] = []
        cursor = 0
        spans = _json_candidates(text)
        for start, end in spans:
            raw = text[start:end]
            try:
                value = json.loads(raw)
            except json.JSONDecodeError:
                if _ACTION_KEY_RX.search(raw):
                    out.append(text[cursor:start])
                    cursor = end
                    self.skip("malformed JSON directive", raw)
                continue
            replacement = self.take_json(value)
            if replacement is None:
                continue
            out.append(text[cursor:start])
            out.append(replacement)
            cursor = end
        rest = text[cursor:]
        # only text past the last balanced region can hold a truncated directive
        tail_from = max(0, spans[-1][1] - cursor) if spans else 0
        m = _ACTION_KEY_RX.search(rest, tail_from)
        if m:
            brace = rest.rfind("{", tail_from, m.start())
            cut = brace if brace >= 0 else m.start()
            self.skip("incomplete JSON directive", rest[cut:])
            rest = rest[:cut]
        out.append(rest)
        self.pieces.append("".join(out))

    def take_fence(self, fence: _Fence) -> None:
        tokens = fence.info.split()
        op = OP_ALIASES.get(tokens[0].lower()) if tokens else None
        if op is not None:
            if not fence.closed:
                self.skip(f"unterminated '{tokens[0]}' block", fence.render())
                return
            try:
                self.actions.append(_action_from_fence(op, tokens[1:], fence.body))
            except _Malformed as e:
                self.skip(str(e), fence.render())
            return

        lang = tokens[0].lower() if tokens else ""
        body = fence.body.strip()
        if lang in ("json", "") and body[:1] in ("{", "["):
            try:
                value = json.loads(body)
            except json.JSONDecodeError:
                if _ACTION_KEY_RX.search(body):
                    self.skip("malformed JSON directive", body)
                    return
                value = None
            if value is not None:
                replacement = self.take_json(value)
                if replacement is not None:
                    self.pieces.append(replacement)
                    return
        self.pieces.append(fence.render())

    def reply(self) -> Optional[str]:
        text = "\n".join(p for p in self.pieces if p.strip())
        text = re.sub(r"\n{3,}", "\n\n", text).strip()
        return text or None


def parse_response(text: Optional[str]) -> ParsedResponse:
    """
    Extract actions from one model response.

    Prose-only responses yield no actions; an empty response raises ParseError.
    """
    if text is None or not text.strip():
        raise ParseError("model returned an empty response")
    stripped = text.strip()
    col = _Collector()

    # whole response is JSON (the format the system prompt asks for)
    try:
        whole = json.loads(stripped)
    except json.JSONDecodeError:
        whole = None
    if whole is not None:
        replacement = col.take_json(whole)
        if replacement is not None:
            col.pieces.append(replacement)
            return _finish(col, [])

    segments = _split_segments(stripped)
    plain_fences: List[_Fence] = []
    for seg in segments:
        if isinstance(seg, _Prose):
            col.take_prose(seg.text)
        else:
            before = len(col.actions) + len(col.skipped)
            col.take_fence(seg)
            if len(col.actions) + len(col.skipped) == before:
                plain_fences.append(seg)
    return _finish(col, plain_fences)


def _finish(col: _Collector, plain_fences: List[_Fence]) -> ParsedResponse:
    if not col.actions and not col.skipped:
        # fallback: "**app.py**" followed by a code block means "create app.py"
        for fence in plain_fences:
            name = _filename_from_heading(fence.heading) if fence.closed else None
            if name:
                logger.info("parser: filename heading '{}' → create_file", name)
                col.actions.append(CreateFile(name, fence.body.rstrip()))

    parsed = ParsedResponse(tuple(col.actions), tuple(col.skipped), col.reply())
    logger.debug(
        "parse_response → actions={} skipped={} reply_len={}",
        len(parsed.actions), len(parsed.skipped), len(parsed.reply or ""),
    )
    return parsed
