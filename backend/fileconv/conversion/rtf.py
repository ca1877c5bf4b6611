"""Minimal RTF reader/writer: enough to move plain text in and out of RTF."""
import re

_TOKEN = re.compile(
    r"\\([a-zA-Z]+)(-?\d+)? ?"   # control word with optional numeric parameter
    r"|\\'([0-9a-fA-F]{2})"      # hex-escaped byte
    r"|\\([^a-zA-Z])"            # control symbol
    r"|([{}])"                   # group delimiter
    r"|[\r\n]+"                  # raw newlines are not content
    r"|([^\\{}\r\n]+)"           # text run
)

# Groups whose content is metadata, not document text
_DESTINATIONS = frozenset({
    "fonttbl", "colortbl", "stylesheet", "info", "pict", "object", "objdata",
    "header", "headerl", "headerr", "headerf", "footer", "footerl", "footerr",
    "footerf", "footnote", "field", "fldinst", "themedata", "colorschememapping",
    "datastore", "latentstyles", "listtable", "listoverridetable", "rsidtbl",
    "generator", "xmlnstbl", "mmathPr", "filetbl", "revtbl", "pgdsctbl",
})

_WORD_TEXT = {
    "par": "\n", "line": "\n", "tab": "\t", "sect": "\n\n", "page": "\n\n",
    "emdash": "\u2014", "endash": "\u2013", "bullet": "\u2022",
    "lquote": "\u2018", "rquote": "\u2019", "ldblquote": "\u201c", "rdblquote": "\u201d",
    "emspace": " ", "enspace": " ", "qmspace": " ",
}
_SYMBOL_TEXT = {"\\": "\\", "{": "{", "}": "}", "~": "\u00a0", "-": "", "_": "-", "\n": "\n", "\r": "\n"}

RTF_HEADER = "{\\rtf1\\ansi\\ansicpg1252\\deff0{\\fonttbl{\\f0\\fswiss Helvetica;}}\\f0\\fs24 "


def rtf_to_text(rtf: str) -> str:
    """Strip RTF markup and return the document text."""
    stack = []
    ignorable = False
    uc_skip = 1  # characters to skip after a \uN escape
    pending_skip = 0
    out: list[str] = []

    def emit(s: str) -> None:
        nonlocal pending_skip
        if ignorable:
            return
        if pending_skip:
            drop = min(pending_skip, len(s))
            pending_skip -= drop
            s = s[drop:]
        out.append(s)

    for m in _TOKEN.finditer(rtf):
        word, param, hex_byte, symbol, brace, text = m.groups()
        if brace == "{":
            stack.append((ignorable, uc_skip))
        elif brace == "}":
            if stack:
                ignorable, uc_skip = stack.pop()
            pending_skip = 0
        elif word is not None:
            if word in _DESTINATIONS:
                ignorable = True
            elif word == "uc":
                uc_skip = int(param or 1)
            elif word == "u":
                code = int(param or 0)
                if code < 0:
                    code += 0x10000
                emit(chr(code))
                pending_skip = uc_skip
            elif word in _WORD_TEXT:
                pending_skip = 0
                emit(_WORD_TEXT[word])
        elif hex_byte is not None:
            if pending_skip:
                pending_skip -= 1
            else:
                emit(bytes([int(hex_byte, 16)]).decode("cp1252", errors="replace"))
        elif symbol is not None:
            if symbol == "*":
                ignorable = True
            elif symbol in _SYMBOL_TEXT:
                emit(_SYMBOL_TEXT[symbol])
        elif text is not None:
            emit(text)

    joined = "".join(out)
    # Recombine surrogate pairs written as two \u escapes
    joined = joined.encode("utf-16", "surrogatepass").decode("utf-16", errors="replace")
    return joined.strip()


def _escape_char(ch: str) -> str:
    if ch in "\\{}":
        return "\\" + ch
    if ch == "\t":
        return "\\tab "
    code = ord(ch)
    if code < 0x80:
        return ch
    if code > 0xFFFF:
        hi, lo = divmod(code - 0x10000, 0x400)
        return _escape_char(chr(0xD800 + hi)) + _escape_char(chr(0xDC00 + lo))
    # \u takes a signed 16-bit value followed by a one-character fallback
    return f"\\u{code - 0x10000 if code > 0x7FFF else code}?"


def text_to_rtf(text: str) -> str:
    """Plain text to a 7-bit RTF document, one \\par per line."""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    body = "\\par\n".join("".join(_escape_char(ch) for ch in line) for line in lines)
    return RTF_HEADER + body + "\n}"
