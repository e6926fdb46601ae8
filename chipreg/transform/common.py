"""Shared helpers for transforms: regex sets, merge checks and id rewriting."""

from __future__ import annotations

import enum
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from chipreg.ir import (
    IR,
    Array,
    BlockItemBlock,
    CursedArray,
    Field,
    FieldSet,
    Register,
    RegularArray,
)


class TransformError(Exception):
    """Raised when a transform cannot be configured or applied."""


_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")
_CAPTURE_NAME = re.compile(r"[_0-9A-Za-z]+")


def _make_regex(pattern: Any) -> re.Pattern:
    if not isinstance(pattern, str):
        raise TransformError(f"regex must be a string, got {pattern!r}")
    try:
        return re.compile("^" + _NAMED_GROUP.sub("(?P<", pattern) + r"\Z")
    except re.error as exc:
        raise TransformError(f"invalid regex {pattern!r}: {exc}") from exc


def _regex_list(data: Any) -> list[re.Pattern]:
    if isinstance(data, str):
        return [_make_regex(data)]
    if isinstance(data, list):
        return [_make_regex(p) for p in data]
    raise TransformError(f"expected a regex or a list of regexes, got {data!r}")


@dataclass
class RegexSet:
    """Names matching any `include` regex and no `exclude` regex."""

    include: list[re.Pattern] = field(default_factory=list)
    exclude: list[re.Pattern] = field(default_factory=list)

    @classmethod
    def from_config(cls, data: Any) -> RegexSet:
        """Build from a string, or a mapping with `include` and optional `exclude`."""
        if isinstance(data, str):
            return cls(include=[_make_regex(data)])
        if isinstance(data, Mapping) and "include" in data:
            return cls(
                include=_regex_list(data["include"]),
                exclude=_regex_list(data.get("exclude", [])),
            )
        raise TransformError(f"invalid regex set {data!r}")

    def captures(self, haystack: str) -> re.Match | None:
        if any(r.search(haystack) for r in self.exclude):
            return None
        for r in self.include:
            m = r.search(haystack)
            if m is not None:
                return m
        return None

    def is_match(self, haystack: str) -> bool:
        if any(r.search(haystack) for r in self.exclude):
            return False
        return any(r.search(haystack) for r in self.include)


def _group_text(match: re.Match, name: str) -> str:
    if name.isdigit():
        index = int(name)
        value = match.group(index) if index <= match.re.groups else None
    else:
        value = match.groupdict().get(name)
    return value or ""


def expand_template(match: re.Match, template: str) -> str:
    """Expand `$name`, `${name}`, `$1` and `$$` in `template` using `match`."""
    out: list[str] = []
    i = 0
    while i < len(template):
        c = template[i]
        if c != "$":
            out.append(c)
            i += 1
            continue
        rest = template[i + 1:]
        if rest.startswith("$"):
            out.append("$")
            i += 2
            continue
        if rest.startswith("{"):
            end = rest.find("}")
            if end == -1:
                out.append("$")
                i += 1
                continue
            name = rest[1:end]
            consumed = end + 1
        else:
            m = _CAPTURE_NAME.match(rest)
            if m is None:
                out.append("$")
                i += 1
                continue
            name = m.group()
            consumed = len(name)
        out.append(_group_text(match, name))
        i += 1 + consumed
    return "".join(out)


class CheckLevel(enum.IntEnum):
    """How strictly two items must agree to be merged."""

    NO_CHECK = 0
    LAYOUT = 1
    NAMES = 2
    DESCRIPTIONS = 3

    @classmethod
    def from_config(cls, data: Any) -> CheckLevel:
        if data is None:
            return cls.NAMES
        try:
            return _CHECK_LEVEL_NAMES[data]
        except (KeyError, TypeError):
            raise TransformError(f"unknown check level {data!r}") from None


_CHECK_LEVEL_NAMES = {
    "NoCheck": CheckLevel.NO_CHECK,
    "Layout": CheckLevel.LAYOUT,
    "Names": CheckLevel.NAMES,
    "Descriptions": CheckLevel.DESCRIPTIONS,
}


class ArrayMode(str, enum.Enum):
    """How irregularly spaced items may be turned into an array."""

    STANDARD = "Standard"
    CURSED = "Cursed"
    HOLEY = "Holey"

    @classmethod
    def from_config(cls, data: Any) -> ArrayMode:
        if data is None:
            return cls.STANDARD
        try:
            return cls(data)
        except ValueError:
            raise TransformError(f"unknown array mode {data!r}") from None


def mergeable_fields(a: Field, b: Field, level: CheckLevel) -> bool:
    ok = True
    if level >= CheckLevel.LAYOUT:
        ok = ok and (
            a.bit_size == b.bit_size
            and a.bit_offset == b.bit_offset
            and a.enum == b.enum
            and a.array == b.array
        )
    if level >= CheckLevel.NAMES:
        ok = ok and a.name == b.name
    if level >= CheckLevel.DESCRIPTIONS:
        ok = ok and a.description == b.description
    return ok


def check_mergeable_fieldsets_inner(a: FieldSet, b: FieldSet, level: CheckLevel) -> None:
    if a.bit_size != b.bit_size:
        raise TransformError(f"Different bit size: {a.bit_size} vs {b.bit_size}")
    if level >= CheckLevel.LAYOUT:
        if len(a.fields) != len(b.fields):
            raise TransformError("Different field count")
        taken: set[int] = set()
        for fa in a.fields:
            match = next(
                (
                    ib
                    for ib, fb in enumerate(b.fields)
                    if ib not in taken and mergeable_fields(fa, fb, level)
                ),
                None,
            )
            if match is None:
                raise TransformError(f"Field in first fieldset has no match: {fa!r}")
            taken.add(match)


def check_mergeable_fieldsets(
    a_name: str, a: FieldSet, b_name: str, b: FieldSet, level: CheckLevel
) -> None:
    try:
        check_mergeable_fieldsets_inner(a, b, level)
    except TransformError as exc:
        raise TransformError(
            f"Cannot merge fieldsets.\nfirst: {a_name} {a!r}\nsecond: {b_name} {b!r}\ncause: {exc}"
        ) from exc


def match_all(names: Iterable[str], regex: RegexSet) -> list[str]:
    """Sorted, unique names matching `regex`."""
    return sorted({n for n in names if regex.is_match(n)})


def match_expand(s: str, regex: RegexSet, template: str) -> str | None:
    m = regex.captures(s)
    if m is None:
        return None
    return expand_template(m, template)


def match_groups(names: Iterable[str], regex: RegexSet, template: str) -> dict[str, list[str]]:
    """Group matching names by their expansion of `template`, all sorted."""
    groups: dict[str, set[str]] = {}
    for s in names:
        to = match_expand(s, regex, template)
        if to is not None:
            groups.setdefault(to, set()).add(s)
    return {k: sorted(groups[k]) for k in sorted(groups)}


def replace_enum_ids(ir: IR, old_ids: Iterable[str], new_id: str) -> None:
    old = set(old_ids)
    for fs in ir.fieldsets.values():
        for f in fs.fields:
            if f.enum is not None and f.enum in old:
                f.enum = new_id


def replace_fieldset_ids(ir: IR, old_ids: Iterable[str], new_id: str) -> None:
    old = set(old_ids)
    for b in ir.blocks.values():
        for item in b.items:
            inner = item.inner
            if isinstance(inner, Register) and inner.fieldset is not None and inner.fieldset in old:
                inner.fieldset = new_id


def replace_block_ids(ir: IR, old_ids: Iterable[str], new_id: str) -> None:
    old = set(old_ids)
    for d in ir.devices.values():
        for p in d.peripherals:
            if p.block is not None and p.block in old:
                p.block = new_id
    for b in ir.blocks.values():
        for item in b.items:
            if isinstance(item.inner, BlockItemBlock) and item.inner.block in old:
                item.inner.block = new_id


def calc_array(offsets: Iterable[int], mode: ArrayMode) -> tuple[int, Array]:
    """Return the start offset and the array describing `offsets`."""
    offsets = sorted(offsets)
    if not offsets:
        raise TransformError("arrayize: no items to make an array from")
    start = offsets[0]
    stride = 0 if len(offsets) == 1 else offsets[1] - offsets[0]

    if all(o == start + n * stride for n, o in enumerate(offsets)):
        return start, RegularArray(len=len(offsets), stride=stride)

    if mode is ArrayMode.STANDARD:
        raise TransformError(
            "arrayize: items are not evenly spaced. Set `mode: Cursed` to allow "
            "index->offset relation to be non-linear, or `mode: Holey` to keep it "
            "linear but fill the holes with indexes that won't be valid."
        )
    if mode is ArrayMode.CURSED:
        return start, CursedArray(offsets=[o - start for o in offsets])
    if stride == 0:
        raise TransformError("arrayize: cannot build a holey array with duplicate offsets")
    return start, RegularArray(len=(offsets[-1] - offsets[0]) // stride + 1, stride=stride)


def extract_variant_desc(
    ir: IR, enum_names: RegexSet, bit_size: int | None
) -> dict[str, str]:
    """Describe the variants of each matching enum as `value: description` lines."""
    out: dict[str, str] = {}
    for name, e in sorted(ir.enums.items()):
        if bit_size is not None and bit_size != e.bit_size:
            continue
        if not enum_names.is_match(name):
            continue
        out[name] = "".join(f"{v.value}: {v.description or ''}\n" for v in e.variants)
    return out


def append_variant_desc_to_field(
    ir: IR, descriptions: Mapping[str, str], bit_size: int | None
) -> None:
    """Append the variant description of a field's enum to the field's description."""
    for fs in ir.fieldsets.values():
        for f in fs.fields:
            if f.enum is None or (bit_size is not None and bit_size != f.bit_size):
                continue
            text = descriptions.get(f.enum)
            if text is None:
                continue
            f.description = text if f.description is None else f"{f.description}\n{text}"