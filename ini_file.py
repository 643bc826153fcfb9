"""
Seamless Co-op Manager - INI reader/writer

The co-op settings files are hand-edited and carry their documentation as
``;`` comments, so this parser keeps every line it reads.  Lines that are
not touched by ``set()`` are written back exactly as they were read, which
makes ``IniFile.parse(text).dumps() == text`` hold for any input.  Each line
remembers its own terminator, so files with mixed LF and CRLF endings are
parsed line by line and written back unchanged.

Parsing is lenient: a line that is neither blank, a comment, a section
header nor a ``key = value`` pair is kept as a comment rather than
rejected, since third-party tools write slightly malformed lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Union

from errors import SettingsParseError

_COMMENT_RE = re.compile(r"^\s*;.*$")
_SECTION_RE = re.compile(r"^\s*\[([^\]]+)\]\s*$")
_KV_RE = re.compile(r"^\s*([^=]+)\s*=\s*(.*)$")
_BOM = "\ufeff"


def _split_lines(text: str) -> Iterator[tuple[str, str]]:
    """Yield ``(line, terminator)`` for each physical line.

    Only ``\\n`` and ``\\r\\n`` end a line; the last line's terminator is ""
    when the text does not end with one.
    """
    pos = 0
    while pos < len(text):
        nl = text.find("\n", pos)
        if nl == -1:
            yield text[pos:], ""
            return
        end = nl - 1 if nl > pos and text[nl - 1] == "\r" else nl
        yield text[pos:end], text[end : nl + 1]
        pos = nl + 1


@dataclass
class Blank:
    raw: str
    eol: Optional[str] = None  # terminator as read; None for lines added by set()


@dataclass
class Comment:
    """A ``;`` comment, or any line the parser did not recognise."""

    raw: str
    eol: Optional[str] = None

    @property
    def text(self) -> str:
        stripped = self.raw.strip()
        if stripped.startswith(";"):
            return stripped[1:].strip()
        return stripped


@dataclass
class KeyValue:
    key: str
    value: str
    raw: Optional[str] = None  # None once the value has been changed
    eol: Optional[str] = None

    def render(self) -> str:
        if self.raw is not None:
            return self.raw
        return f"{self.key} = {self.value}"


Entry = Union[Blank, Comment, KeyValue]


@dataclass
class Section:
    name: str  # "" for the implicit section before the first header
    header: Optional[str] = None
    entries: list[Entry] = field(default_factory=list)
    header_eol: Optional[str] = None

    def render_header(self) -> Optional[str]:
        if self.header is not None:
            return self.header
        if self.name:
            return f"[{self.name}]"
        return None

    def settings(self) -> Iterator[KeyValue]:
        for entry in self.entries:
            if isinstance(entry, KeyValue):
                yield entry


class IniFile:
    def __init__(self):
        self._sections: list[Section] = [Section(name="")]
        self.newline = "\n"
        self.trailing_newline = True
        self.bom = False

    # ── Reading ───────────────────────────────────────────────────────

    @classmethod
    def read(cls, path: str | Path) -> IniFile:
        path = Path(path)
        data = path.read_bytes()
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SettingsParseError(f"{path} is not valid UTF-8: {exc}") from exc
        return cls.parse(text)

    @classmethod
    def parse(cls, text: str) -> IniFile:
        ini = cls()
        if text.startswith(_BOM):
            ini.bom = True
            text = text[len(_BOM):]
        # Lines added later use whichever ending the file mostly has
        crlf = text.count("\r\n")
        if crlf > text.count("\n") - crlf:
            ini.newline = "\r\n"
        if text:
            ini.trailing_newline = text.endswith("\n")

        section = ini._sections[0]
        for line, eol in _split_lines(text):
            if line.strip() == "":
                section.entries.append(Blank(line, eol))
            elif _COMMENT_RE.match(line):
                section.entries.append(Comment(line, eol))
            elif m := _SECTION_RE.match(line):
                section = Section(name=m.group(1).strip(), header=line, header_eol=eol)
                ini._sections.append(section)
            elif m := _KV_RE.match(line):
                section.entries.append(
                    KeyValue(key=m.group(1).strip(), value=m.group(2).strip(), raw=line, eol=eol)
                )
            else:
                section.entries.append(Comment(line, eol))
        return ini

    # ── Writing ───────────────────────────────────────────────────────

    def dumps(self) -> str:
        lines: list[tuple[str, Optional[str]]] = []
        for section in self._sections:
            header = section.render_header()
            if header is not None:
                lines.append((header, section.header_eol))
            for entry in section.entries:
                text = entry.render() if isinstance(entry, KeyValue) else entry.raw
                lines.append((text, entry.eol))

        parts = [_BOM] if self.bom else []
        last = len(lines) - 1
        for i, (text, eol) in enumerate(lines):
            parts.append(text)
            if i < last:
                # "" only ever comes from the old last line, which now needs one
                parts.append(eol or self.newline)
            elif eol is not None:
                parts.append(eol)
            elif self.trailing_newline:
                parts.append(self.newline)
        return "".join(parts)

    def write(self, path: str | Path):
        Path(path).write_bytes(self.dumps().encode("utf-8"))

    # ── Access ────────────────────────────────────────────────────────

    def sections(self) -> Iterator[Section]:
        return iter(self._sections)

    def has_section(self, name: str) -> bool:
        return any(s.name == name for s in self._sections)

    def get(self, section: str, key: str) -> Optional[str]:
        for s in self._sections:
            if s.name != section:
                continue
            for kv in s.settings():
                if kv.key == key:
                    return kv.value
        return None

    def set(self, section: str, key: str, value: str):
        """Set ``key`` in ``section``, keeping its position if it already exists.

        A new key is added after the last non-blank line of the section; a new
        section is added at the end of the document.
        """
        key = key.strip()
        value = value.strip()
        for s in self._sections:
            if s.name != section:
                continue
            for kv in s.settings():
                if kv.key == key:
                    if kv.value != value:
                        kv.value = value
                        kv.raw = None
                    return
            insert_at = len(s.entries)
            while insert_at > 0 and isinstance(s.entries[insert_at - 1], Blank):
                insert_at -= 1
            s.entries.insert(insert_at, KeyValue(key=key, value=value))
            return

        self._sections.append(
            Section(name=section.strip(), entries=[KeyValue(key=key, value=value)])
        )
