"""Transforms that delete items, fields, variants and references from an IR."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from chipreg.ir import IR, BlockItemBlock, Enum, FieldSet, Register
from chipreg.transform.common import (
    RegexSet,
    TransformError,
    append_variant_desc_to_field,
    extract_variant_desc,
    match_all,
)

log = logging.getLogger(__name__)

_MISSING = object()

USELESS_ZERO_NAMES = frozenset(
    {
        "dis", "disable", "disabled", "off", "false", "no", "busy", "pending", "discon",
        "disconnect", "disconnected", "not_detected", "invalid", "no_effect", "passthru",
    }
)
USELESS_ONE_NAMES = frozenset(
    {
        "en", "enable", "enabled", "on", "true", "yes", "ready", "available", "connect",
        "connected", "detected", "valid", "set", "clr",
    }
)
NOT_NAMES = ("not", "no", "un", "de", "in")


def _config(data: Any, what: str) -> Mapping:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TransformError(f"{what}: expected a mapping, got {data!r}")
    return data


def _get(data: Mapping, key: str, what: str, default: Any = _MISSING) -> Any:
    if key in data:
        return data[key]
    if default is _MISSING:
        raise TransformError(f"{what}: missing field `{key}`")
    return default


def _regex(data: Mapping, key: str, what: str) -> RegexSet:
    return RegexSet.from_config(_get(data, key, what))


def _bool(data: Mapping, key: str, what: str, default: bool | None) -> bool | None:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise TransformError(f"{what}: field `{key}` must be a boolean")
    return value


def _opt_u32(data: Mapping, key: str, what: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 1 << 32:
        raise TransformError(f"{what}: field `{key}` must be an unsigned 32-bit integer")
    return value


def remove_block_ids(ir: IR, ids: Iterable[str]) -> None:
    """Drop block items and peripherals that refer to any block in `ids`."""
    ids = set(ids)
    for b in ir.blocks.values():
        b.items[:] = [
            i for i in b.items
            if not (isinstance(i.inner, BlockItemBlock) and i.inner.block in ids)
        ]
    for d in ir.devices.values():
        d.peripherals[:] = [p for p in d.peripherals if p.block is None or p.block not in ids]


def remove_enum_ids(ir: IR, ids: Iterable[str]) -> None:
    """Clear the enum of every field that refers to an enum in `ids`."""
    ids = set(ids)
    for fs in ir.fieldsets.values():
        for f in fs.fields:
            if f.enum is not None and f.enum in ids:
                f.enum = None


def remove_fieldset_ids(ir: IR, ids: Iterable[str]) -> None:
    """Clear the fieldset of every register that refers to a fieldset in `ids`."""
    ids = set(ids)
    for b in ir.blocks.values():
        for item in b.items:
            reg = item.inner
            if isinstance(reg, Register) and reg.fieldset is not None and reg.fieldset in ids:
                reg.fieldset = None


def is_useless_enum(e: Enum) -> bool:
    """Whether an enum adds nothing over a plain bool or is empty."""
    if e.bit_size == 0:
        return True
    if e.bit_size != 1:
        return False
    if len(e.variants) <= 1:
        return True
    if len(e.variants) > 2:
        raise TransformError(f"1-bit enum has {len(e.variants)} variants")
    zero = next((v for v in e.variants if v.value == 0), None)
    one = next((v for v in e.variants if v.value == 1), None)
    if zero is None or one is None:
        raise TransformError("1-bit enum with two variants must have values 0 and 1")
    zero_name = zero.name.lower()
    one_name = one.name.lower()
    obvious = zero_name in USELESS_ZERO_NAMES and one_name in USELESS_ONE_NAMES
    negated = any(
        zero_name in (f"{n}{one_name}", f"{n}_{one_name}") for n in NOT_NAMES
    )
    return obvious or negated


def is_useless_fieldset(fs: FieldSet) -> bool:
    """A fieldset is useless with no fields, or one plain field covering it all."""
    if not fs.fields:
        return True
    if len(fs.fields) == 1:
        f = fs.fields[0]
        return fs.bit_size == f.bit_size and f.bit_offset.min_offset() == 0 and f.enum is None
    return False


@dataclass
class Delete:
    """Delete fieldsets, enums and blocks whose names match, with their references."""

    from_: RegexSet

    @classmethod
    def from_config(cls, data: Any) -> Delete:
        data = _config(data, "Delete")
        return cls(from_=_regex(data, "from", "Delete"))

    def run(self, ir: IR) -> None:
        ids = [n for n in sorted(ir.fieldsets) if self.from_.is_match(n)]
        for n in ids:
            log.info("deleting fieldset %s", n)
        remove_fieldset_ids(ir, ids)
        for n in ids:
            del ir.fieldsets[n]

        ids = [n for n in sorted(ir.enums) if self.from_.is_match(n)]
        for n in ids:
            log.info("deleting enum %s", n)
        remove_enum_ids(ir, ids)
        for n in ids:
            del ir.enums[n]

        ids = [n for n in sorted(ir.blocks) if self.from_.is_match(n)]
        for n in ids:
            log.info("deleting block %s", n)
        remove_block_ids(ir, ids)
        for n in ids:
            del ir.blocks[n]


@dataclass
class DeleteEnumVariants:
    enum: RegexSet
    from_: RegexSet

    @classmethod
    def from_config(cls, data: Any) -> DeleteEnumVariants:
        what = "DeleteEnumVariants"
        data = _config(data, what)
        return cls(enum=_regex(data, "enum", what), from_=_regex(data, "from", what))

    def run(self, ir: IR) -> None:
        for name in match_all(ir.enums, self.enum):
            e = ir.enums[name]
            kept = []
            for v in e.variants:
                if self.from_.is_match(v.name):
                    log.info("deleting enum variant %s::%s", name, v.name)
                else:
                    kept.append(v)
            e.variants[:] = kept


@dataclass
class DeleteEnums:
    """Delete enums by name and optional bit size; `soft` only drops references."""

    from_: RegexSet
    bit_size: int | None = None
    soft: bool = False
    keep_desc: bool | None = None

    @classmethod
    def from_config(cls, data: Any) -> DeleteEnums:
        what = "DeleteEnums"
        data = _config(data, what)
        return cls(
            from_=_regex(data, "from", what),
            bit_size=_opt_u32(data, "bit_size", what),
            soft=_bool(data, "soft", what, False),
            keep_desc=_bool(data, "keep_desc", what, None),
        )

    def run(self, ir: IR) -> None:
        if self.keep_desc:
            descs = extract_variant_desc(ir, self.from_, self.bit_size)
            append_variant_desc_to_field(ir, descs, self.bit_size)

        ids = [
            n for n, e in sorted(ir.enums.items())
            if self.from_.is_match(n) and (self.bit_size is None or self.bit_size == e.bit_size)
        ]
        for n in ids:
            log.info("deleting enum %s", n)
        remove_enum_ids(ir, ids)
        if not self.soft:
            for n in ids:
                del ir.enums[n]


@dataclass
class DeleteEnumsUsedIn:
    """Delete every enum used by a field of a matching fieldset."""

    fieldsets: RegexSet
    soft: bool = False

    @classmethod
    def from_config(cls, data: Any) -> DeleteEnumsUsedIn:
        what = "DeleteEnumsUsedIn"
        data = _config(data, what)
        return cls(
            fieldsets=_regex(data, "fieldsets", what),
            soft=_bool(data, "soft", what, False),
        )

    def run(self, ir: IR) -> None:
        ids: set[str] = set()
        for name, fs in sorted(ir.fieldsets.items()):
            if not self.fieldsets.is_match(name):
                continue
            log.info("matched fieldset %s", name)
            for f in fs.fields:
                if f.enum is not None:
                    log.info("deleting enum %s", f.enum)
                    ids.add(f.enum)
        remove_enum_ids(ir, ids)
        if not self.soft:
            for n in ids:
                ir.enums.pop(n, None)


@dataclass
class DeleteEnumsWithVariants:
    """Delete enums whose variants are exactly the given value-to-name mapping."""

    variants: dict[int, str] = field(default_factory=dict)
    soft: bool = False

    @classmethod
    def from_config(cls, data: Any) -> DeleteEnumsWithVariants:
        what = "DeleteEnumsWithVariants"
        data = _config(data, what)
        variants = _get(data, "variants", what)
        if not isinstance(variants, Mapping):
            raise TransformError(f"{what}: field `variants` must be a mapping")
        for k, v in variants.items():
            if isinstance(k, bool) or not isinstance(k, int) or k < 0 or not isinstance(v, str):
                raise TransformError(f"{what}: variants must map unsigned integers to names")
        return cls(variants=dict(variants), soft=_bool(data, "soft", what, False))

    def _matches(self, e: Enum) -> bool:
        if len(e.variants) != len(self.variants):
            return False
        return all(self.variants.get(v.value) == v.name for v in e.variants)

    def run(self, ir: IR) -> None:
        ids = [n for n, e in sorted(ir.enums.items()) if self._matches(e)]
        for n in ids:
            log.info("deleting enum %s", n)
        remove_enum_ids(ir, ids)
        if not self.soft:
            for n in ids:
                del ir.enums[n]


@dataclass
class DeleteUselessEnums:
    """Delete enums that add nothing over a plain integer or bool."""

    soft: bool = False

    @classmethod
    def from_config(cls, data: Any) -> DeleteUselessEnums:
        data = _config(data, "DeleteUselessEnums")
        return cls(soft=_bool(data, "soft", "DeleteUselessEnums", False))

    def run(self, ir: IR) -> None:
        ids = [n for n, e in sorted(ir.enums.items()) if is_useless_enum(e)]
        for n in ids:
            log.info("deleting enum %s", n)
        remove_enum_ids(ir, ids)
        if not self.soft:
            for n in ids:
                del ir.enums[n]


@dataclass
class DeleteFields:
    fieldset: RegexSet
    from_: RegexSet

    @classmethod
    def from_config(cls, data: Any) -> DeleteFields:
        what = "DeleteFields"
        data = _config(data, what)
        return cls(fieldset=_regex(data, "fieldset", what), from_=_regex(data, "from", what))

    def run(self, ir: IR) -> None:
        for name in match_all(ir.fieldsets, self.fieldset):
            fs = ir.fieldsets[name]
            fs.fields[:] = [f for f in fs.fields if not self.from_.is_match(f.name)]


@dataclass
class DeleteFieldsets:
    """Delete matching fieldsets, only the useless ones if `useless` is set."""

    from_: RegexSet
    useless: bool = False
    soft: bool = False

    @classmethod
    def from_config(cls, data: Any) -> DeleteFieldsets:
        what = "DeleteFieldsets"
        data = _config(data, what)
        return cls(
            from_=_regex(data, "from", what),
            useless=_bool(data, "useless", what, False),
            soft=_bool(data, "soft", what, False),
        )

    def run(self, ir: IR) -> None:
        ids = [
            n for n, fs in sorted(ir.fieldsets.items())
            if self.from_.is_match(n) and (not self.useless or is_useless_fieldset(fs))
        ]
        for n in ids:
            log.info("deleting fieldset %s", n)
        remove_fieldset_ids(ir, ids)
        if not self.soft:
            for n in ids:
                del ir.fieldsets[n]


@dataclass
class DeletePeripherals:
    devices: RegexSet
    from_: RegexSet

    @classmethod
    def from_config(cls, data: Any) -> DeletePeripherals:
        what = "DeletePeripherals"
        data = _config(data, what)
        return cls(devices=_regex(data, "devices", what), from_=_regex(data, "from", what))

    def run(self, ir: IR) -> None:
        for name in match_all(ir.devices, self.devices):
            d = ir.devices[name]
            kept = []
            for p in d.peripherals:
                if self.from_.is_match(p.name):
                    log.info("deleting peripheral %s", p.name)
                else:
                    kept.append(p)
            d.peripherals[:] = kept


@dataclass
class DeleteRegisters:
    block: RegexSet
    from_: RegexSet

    @classmethod
    def from_config(cls, data: Any) -> DeleteRegisters:
        what = "DeleteRegisters"
        data = _config(data, what)
        return cls(block=_regex(data, "block", what), from_=_regex(data, "from", what))

    def run(self, ir: IR) -> None:
        for name in match_all(ir.blocks, self.block):
            b = ir.blocks[name]
            b.items[:] = [i for i in b.items if not self.from_.is_match(i.name)]