"""Name sanitising, case conversion and formatting helpers."""

from __future__ import annotations

import re

BITS_PER_BYTE = 8

INVALID_CHARS = frozenset("()[]/ -")

KEYWORDS = frozenset(
    {
        "abstract", "as", "async", "await", "become", "box", "break", "const", "continue",
        "crate", "do", "dyn", "else", "enum", "extern", "false", "final", "fn", "for", "if",
        "impl", "in", "let", "loop", "macro", "match", "mod", "move", "mut", "override",
        "priv", "pub", "ref", "return", "self", "Self", "static", "struct", "super", "trait",
        "true", "try", "type", "typeof", "unsafe", "unsized", "use", "virtual", "where",
        "while", "yield",
    }
)

_SEPARATORS = re.compile(r"[\W_]+")
_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])|(?<=[A-Z0-9])(?=[A-Z][a-z])")


def sanitize_ident(s: str) -> str:
    """Make `s` a valid identifier with minimal changes and no case changes."""
    s = "".join(c for c in s if c not in INVALID_CHARS)
    if s in KEYWORDS:
        return s + "_"
    if s[:1].isnumeric():
        return "_" + s
    return s


def _words(s: str) -> list[str]:
    return [
        word
        for chunk in _SEPARATORS.split(s)
        if chunk
        for word in _BOUNDARY.split(chunk)
        if word
    ]


def to_snake_case(s: str) -> str:
    return "_".join(w.lower() for w in _words(s))


def to_pascal_case(s: str) -> str:
    return "".join(w[:1].upper() + w[1:].lower() for w in _words(s))


def to_constant_case(s: str) -> str:
    return "_".join(w.upper() for w in _words(s))


def to_upper_case(s: str) -> str:
    return s.upper()


def sanitized_snake_case(s: str) -> str:
    return sanitize_ident(to_snake_case(s))


def sanitized_pascal_case(s: str) -> str:
    return sanitize_ident(to_pascal_case(s))


def sanitized_constant_case(s: str) -> str:
    return sanitize_ident(to_constant_case(s))


def sanitized_upper_case(s: str) -> str:
    return sanitize_ident(to_upper_case(s))


def respace(s: str) -> str:
    """Collapse all runs of whitespace into single spaces and trim."""
    return " ".join(s.split())


def _escape(s: str, bracket: str) -> str:
    acc = ""
    for piece in s.split(bracket):
        if not acc:
            acc = piece
        elif acc.endswith("\\"):
            acc = acc + bracket + piece
        else:
            acc = acc + "\\" + bracket + piece
    return acc


def escape_brackets(s: str) -> str:
    """Backslash-escape square brackets that are not already escaped."""
    return _escape(_escape(s, "["), "]")


def replace_suffix(name: str, suffix: str) -> str:
    """Replace the `[%s]` (or else `%s`) placeholder in an array name."""
    if "[%s]" in name:
        return name.replace("[%s]", suffix)
    return name.replace("%s", suffix)


def hex_str(n: int) -> str:
    """Format `n` as hex with `_` between 16-bit groups."""
    if n < 0 or n >= 1 << 64:
        raise ValueError(f"value {n} is out of the unsigned 64-bit range")
    h4, h3, h2, h1 = (n >> 48) & 0xFFFF, (n >> 32) & 0xFFFF, (n >> 16) & 0xFFFF, n & 0xFFFF
    if h4:
        return f"0x{h4:04x}_{h3:04x}_{h2:04x}_{h1:04x}"
    if h3:
        return f"0x{h3:04x}_{h2:04x}_{h1:04x}"
    if h2:
        return f"0x{h2:04x}_{h1:04x}"
    if h1 & 0xFF00:
        return f"0x{h1:04x}"
    if h1:
        return f"0x{h1 & 0xFF:02x}"
    return "0x0"


def type_name(bits: int) -> str:
    """Name of the smallest integral type holding `bits` bits."""
    if bits == 1:
        return "bool"
    if 2 <= bits <= 8:
        return "u8"
    if 9 <= bits <= 16:
        return "u16"
    if 17 <= bits <= 32:
        return "u32"
    if 33 <= bits <= 64:
        return "u64"
    raise ValueError(f"can't convert {bits} bits into an integral type")


def type_width(bits: int) -> int:
    """Width of the smallest integral type holding `bits` bits."""
    if bits == 1:
        return 1
    if 2 <= bits <= 8:
        return 8
    if 9 <= bits <= 16:
        return 16
    if 17 <= bits <= 32:
        return 32
    if 33 <= bits <= 64:
        return 64
    raise ValueError(f"can't convert {bits} bits into an integral type width")


def relative_path(a: str, b: str) -> str:
    """Return a `::` path to reach item `a` from the module of item `b`."""
    pa = a.split("::")
    pb = b.split("::")
    ma, mb = pa[:-1], pb[:-1]
    common = 0
    for x, y in zip(ma, mb):
        if x != y:
            break
        common += 1
    parts = ["super"] * (len(mb) - common) + ma[common:] + [pa[-1]]
    return "::".join(parts)