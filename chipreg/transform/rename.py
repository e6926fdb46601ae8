"""Transforms that rename items, and resize enums."""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from itertools import combinations
from typing import Any

from chipreg.ir import IR
from chipreg.transform.common import RegexSet, TransformError, match_all, match_expand
from chipreg.transform.naming import (
    map_block_names,
    map_device_names,
    map_enum_names,
    map_fieldset_names,
)
from chipreg.validate import fields_overlap

log = logging.getLogger(__name__)

_MISSING = object()


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


def _str(data: Mapping, key: str, what: str) -> str:
    value = _get(data, key, what)
    if not isinstance(value, str):
        raise TransformError(f"{what}: field `{key}` must be a string")
    return value


class RenameType(str, enum.Enum):
    """Which kinds of top-level items a rename applies to."""

    ALL = "All"
    DEVICE = "Device"
    BLOCK = "Block"
    FIELDSET = "Fieldset"
    ENUM = "Enum"


def _expander(regex: RegexSet, template: str):
    def rename(name: str) -> str:
        new = match_expand(name, regex, template)
        return name if new is None else new

    return rename


@dataclass
class Rename:
    """Rename devices, blocks, fieldsets and enums, updating references."""

    from_: RegexSet
    to: str
    type: RenameType = RenameType.ALL

    @classmethod
    def from_config(cls, data: Any) -> Rename:
        what = "Rename"
        data = _config(data, what)
        raw_type = _get(data, "type", what)
        try:
            kind = RenameType(raw_type)
        except ValueError:
            raise TransformError(f"{what}: unknown type {raw_type!r}") from None
        return cls(from_=_regex(data, "from", what), to=_str(data, "to", what), type=kind)

    def run(self, ir: IR) -> None:
        rename = _expander(self.from_, self.to)
        if self.type in (RenameType.ALL, RenameType.DEVICE):
            map_device_names(ir, rename)
        if self.type in (RenameType.ALL, RenameType.BLOCK):
            map_block_names(ir, rename)
        if self.type in (RenameType.ALL, RenameType.FIELDSET):
            map_fieldset_names(ir, rename)
        if self.type in (RenameType.ALL, RenameType.ENUM):
            map_enum_names(ir, rename)


@dataclass
class RenameFields:
    fieldset: RegexSet
    from_: RegexSet
    to: str

    @classmethod
    def from_config(cls, data: Any) -> RenameFields:
        what = "RenameFields"
        data = _config(data, what)
        return cls(
            fieldset=_regex(data, "fieldset", what),
            from_=_regex(data, "from", what),
            to=_str(data, "to", what),
        )

    def run(self, ir: IR) -> None:
        rename = _expander(self.from_, self.to)
        for name in match_all(ir.fieldsets, self.fieldset):
            for f in ir.fieldsets[name].fields:
                f.name = rename(f.name)


@dataclass
class RenameRegisters:
    block: RegexSet
    from_: RegexSet
    to: str

    @classmethod
    def from_config(cls, data: Any) -> RenameRegisters:
        what = "RenameRegisters"
        data = _config(data, what)
        return cls(
            block=_regex(data, "block", what),
            from_=_regex(data, "from", what),
            to=_str(data, "to", what),
        )

    def run(self, ir: IR) -> None:
        rename = _expander(self.from_, self.to)
        for name in match_all(ir.blocks, self.block):
            for item in ir.blocks[name].items:
                item.name = rename(item.name)


@dataclass
class RenameEnumVariants:
    enum: RegexSet
    from_: RegexSet
    to: str

    @classmethod
    def from_config(cls, data: Any) -> RenameEnumVariants:
        what = "RenameEnumVariants"
        data = _config(data, what)
        return cls(
            enum=_regex(data, "enum", what),
            from_=_regex(data, "from", what),
            to=_str(data, "to", what),
        )

    def run(self, ir: IR) -> None:
        rename = _expander(self.from_, self.to)
        for name in match_all(ir.enums, self.enum):
            for v in ir.enums[name].variants:
                v.name = rename(v.name)


@dataclass
class RenameInterrupts:
    from_: RegexSet
    to: str

    @classmethod
    def from_config(cls, data: Any) -> RenameInterrupts:
        what = "RenameInterrupts"
        data = _config(data, what)
        return cls(from_=_regex(data, "from", what), to=_str(data, "to", what))

    def run(self, ir: IR) -> None:
        rename = _expander(self.from_, self.to)
        for d in ir.devices.values():
            for i in d.interrupts:
                i.name = rename(i.name)


@dataclass
class RenamePeripherals:
    from_: RegexSet
    to: str

    @classmethod
    def from_config(cls, data: Any) -> RenamePeripherals:
        what = "RenamePeripherals"
        data = _config(data, what)
        return cls(from_=_regex(data, "from", what), to=_str(data, "to", what))

    def run(self, ir: IR) -> None:
        rename = _expander(self.from_, self.to)
        for d in ir.devices.values():
            for p in d.peripherals:
                p.name = rename(p.name)


@dataclass
class ResizeEnums:
    """Change the bit size of matching enums and of the fields that use them."""

    enum: RegexSet
    bit_size: int

    @classmethod
    def from_config(cls, data: Any) -> ResizeEnums:
        what = "ResizeEnums"
        data = _config(data, what)
        size = _get(data, "bit_size", what)
        if isinstance(size, bool) or not isinstance(size, int) or not 0 <= size < 1 << 32:
            raise TransformError(f"{what}: field `bit_size` must be an unsigned 32-bit integer")
        return cls(enum=_regex(data, "enum", what), bit_size=size)

    def run(self, ir: IR) -> None:
        ids = match_all(ir.enums, self.enum)
        if self.bit_size == 0:
            raise TransformError("Cannot resize an enum to 0 bits (delete the enum?)")
        for name in ids:
            log.info("Resizing enum %s to %d bits", name, self.bit_size)
            ir.enums[name].bit_size = self.bit_size
        for name in ids:
            _verify_variants(ir, name)
            _update_uses(ir, name)


def _verify_variants(ir: IR, name: str) -> None:
    e = ir.enums[name]
    if e.bit_size >= 64:
        raise TransformError("Bit size is too large")
    max_value = (1 << e.bit_size) - 1
    bad = [v for v in e.variants if v.value > max_value]
    for v in bad:
        log.error(
            "%s::%s (value: %d) is out of range as a result of resize to %d bits",
            name, v.name, v.value, e.bit_size,
        )
    if bad:
        raise TransformError(
            f"enum {name}: variants out of range after resize to {e.bit_size} bits: "
            + ", ".join(v.name for v in bad)
        )


def _update_uses(ir: IR, name: str) -> None:
    bit_size = ir.enums[name].bit_size
    for fsname, fs in sorted(ir.fieldsets.items()):
        users = [f for f in fs.fields if f.enum == name]
        if not users:
            continue
        for f in users:
            f.bit_size = bit_size
        overlaps = [(a, b) for a, b in combinations(fs.fields, 2) if fields_overlap(a, b)]
        for a, b in overlaps:
            log.error("fieldset %s: fields overlap: %s %s", fsname, a.name, b.name)
        if overlaps:
            raise TransformError(
                f"fieldset {fsname}: fields overlap: "
                + ", ".join(f"{a.name} {b.name}" for a, b in overlaps)
            )