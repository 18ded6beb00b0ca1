"""
Jenkinsfile Scanner

Low-level helpers for the Groovy pipeline DSL: literal-aware brace and
parenthesis matching, comment stripping, named-argument parsing and
variable reference discovery. Offsets are always preserved, so positions
found in a stripped or masked copy are valid in the original text.
"""
import re
from typing import Dict, List, Optional, Tuple

_VARIABLE_REF = re.compile(r"(?<!\$)\$\{?([A-Z_][A-Z0-9_]*)\b")
STAGE_DECLARATION = re.compile(r"\bstage\s*\(\s*(?:name\s*:\s*)?(['\"])(.+?)\1\s*\)\s*\{")


def _literal_spans(text: str) -> List[Tuple[int, int, str]]:
    """Return (start, end, kind) spans for string literals and comments.

    kind is "string" or "comment"; end is exclusive. Unterminated literals
    run to the end of the text.
    """
    spans = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "/" and i + 1 < n and text[i + 1] == "/":
            end = text.find("\n", i)
            end = n if end == -1 else end
            spans.append((i, end, "comment"))
            i = end
            continue
        if ch == "/" and i + 1 < n and text[i + 1] == "*":
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            spans.append((i, end, "comment"))
            i = end
            continue
        if ch in ("'", '"'):
            triple = text[i:i + 3]
            if triple in ("'''", '"""'):
                end = text.find(triple, i + 3)
                end = n if end == -1 else end + 3
                spans.append((i, end, "string"))
                i = end
                continue
            j = i + 1
            while j < n:
                if text[j] == "\\":
                    j += 2
                    continue
                if text[j] == ch or text[j] == "\n":
                    break
                j += 1
            end = min(j + 1, n)
            spans.append((i, end, "string"))
            i = end
            continue
        i += 1
    return spans


def _blank(text: str, spans) -> str:
    chars = list(text)
    for start, end in spans:
        for k in range(start, end):
            if chars[k] != "\n":
                chars[k] = " "
    return "".join(chars)


def strip_comments(text: str) -> str:
    """Blank out comments, keeping string literals and all offsets."""
    return _blank(text, [(s, e) for s, e, kind in _literal_spans(text) if kind == "comment"])


def mask_literals(text: str) -> str:
    """Blank out comments and string literals, keeping all offsets."""
    return _blank(text, [(s, e) for s, e, _ in _literal_spans(text)])


def blank_ranges(text: str, ranges) -> str:
    """Blank the given (start, end) ranges, keeping newlines."""
    return _blank(text, ranges)


def find_closing(text: str, open_index: int) -> int:
    """Find the delimiter closing the one at open_index.

    Works for braces, parentheses and brackets. Delimiters inside string
    literals or comments are ignored. Returns -1 when unbalanced.
    """
    pairs = {"{": "}", "(": ")", "[": "]"}
    opener = text[open_index]
    closer = pairs.get(opener)
    if closer is None:
        return -1
    masked = mask_literals(text[open_index:])
    depth = 0
    for offset, ch in enumerate(masked):
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return open_index + offset
    return -1


def line_number(text: str, offset: int) -> int:
    """1-based line number of a character offset."""
    return text.count("\n", 0, offset) + 1


def line_at(text: str, offset: int) -> str:
    start = text.rfind("\n", 0, offset) + 1
    end = text.find("\n", offset)
    return text[start:] if end == -1 else text[start:end]


def iter_blocks(text: str, keyword: str, code: Optional[str] = None):
    """Yield (match, body_start, body_end) for every `keyword {` block.

    The keyword is searched in a literal-masked copy, so occurrences in
    strings and comments are skipped. body_end is the index of the
    closing brace, or len(text) for an unterminated block.
    """
    masked = code if code is not None else mask_literals(text)
    for match in re.finditer(r"\b%s\s*\{" % keyword, masked):
        open_index = match.end() - 1
        close = find_closing(text, open_index)
        yield match, open_index + 1, close if close != -1 else len(text)


def iter_calls(text: str, name_pattern: str, code: Optional[str] = None):
    """Yield (match, args_text) for `name(...)` calls outside literals."""
    masked = code if code is not None else mask_literals(text)
    for match in re.finditer(r"\b(%s)\s*\(" % name_pattern, masked):
        open_index = match.end() - 1
        close = find_closing(text, open_index)
        if close == -1:
            continue
        yield match, text[open_index + 1:close]


def split_top_level(args: str, separator: str = ",") -> List[str]:
    """Split on a separator that is not nested inside brackets or literals."""
    masked = mask_literals(args)
    parts = []
    depth = 0
    last = 0
    for i, ch in enumerate(masked):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == separator and depth == 0:
            parts.append(args[last:i].strip())
            last = i + 1
    tail = args[last:].strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


def parse_named_args(args: str) -> Dict[str, str]:
    """Parse `key: value, key2: value2` into a dict of raw value strings.

    Positional arguments are stored under "_0", "_1", ...
    """
    result = {}
    position = 0
    for part in split_top_level(args):
        match = re.match(r"^([A-Za-z_]\w*)\s*:\s*(.*)$", part, re.DOTALL)
        if match:
            result[match.group(1)] = match.group(2).strip()
        else:
            result[f"_{position}"] = part
            position += 1
    return result


def unquote(value: Optional[str]) -> Optional[str]:
    """Strip Groovy string quotes; unquoted expressions are returned as-is."""
    if value is None:
        return None
    value = value.strip()
    for quote in ("'''", '"""', "'", '"'):
        if len(value) >= 2 * len(quote) and value.startswith(quote) and value.endswith(quote):
            inner = value[len(quote):-len(quote)]
            return inner.replace("\\'", "'").replace('\\"', '"').replace("\\$", "$")
    return value


def parse_list_literal(value: str) -> List[str]:
    """Parse `['a', 'b']` (or a bare string) into a list of strings."""
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        return [unquote(item) for item in split_top_level(value[1:-1])]
    text = unquote(value)
    text = text.replace("\\n", "\n")
    return [line.strip() for line in text.split("\n") if line.strip()]


def find_variable_references(text: str) -> List[str]:
    """Uppercase `$VAR` / `${VAR}` names referenced in text, in order, unique."""
    seen = []
    for match in _VARIABLE_REF.finditer(text):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def read_string_literal(text: str, start: int) -> Tuple[Optional[str], int]:
    """Read the Groovy string literal beginning at start.

    Returns (content, end_index) or (None, start) if no literal is there.
    """
    for quote in ("'''", '"""', "'", '"'):
        if text.startswith(quote, start):
            if len(quote) == 3:
                end = text.find(quote, start + 3)
                if end == -1:
                    return None, start
                return text[start + 3:end], end + 3
            j = start + 1
            while j < len(text):
                if text[j] == "\\":
                    j += 2
                    continue
                if text[j] == quote:
                    return text[start + 1:j], j + 1
                if text[j] == "\n":
                    return None, start
                j += 1
            return None, start
    return None, start
