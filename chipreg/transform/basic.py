"""Sorting, sanitising, adding and simple modifying transforms."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from chipreg import util
from chipreg.ir import (
    IR,
    BitOffset,
    BlockItem,
    EnumVariant,
    Field,
    FieldSet,
    Interrupt,
    IRError,
    Register,
)
from chipreg.transform.common import RegexSet, TransformError, match_all
from chipreg.transform.naming import NameKind, map_names

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


def _parse_list(data: Mapping, key: str, what: str, parse: Callable[[Any], Any]) -> list:
    items = _get(data, key, what)
    if not isinstance(items, list):
        raise TransformError(f"{what}: field `{key}` must be a list")
    try:
        return [parse(i) for i in items]
    except IRError as exc:
        raise TransformError(f"{what}: {exc}") from exc


def _opt_bool(data: Mapping, key: str, what: str) -> bool | None:
    value = data.get(key)
    if value is not None and not isinstance(value, bool):
        raise TransformError(f"{what}: field `{key}` must be a boolean")
    return value


def sanitize_path(path: str) -> str:
    """Snake-case module components and pascal-case the final item of a `::` path."""
    parts = path.split("::")
    return "::".join(
        [util.sanitized_snake_case(p) for p in parts[:-1]]
        + [util.sanitized_pascal_case(parts[-1])]
    )


def topological_sort(deps: Mapping[str, str | None]) -> list[str]:
    """Order names so that each comes after the one it depends on."""
    done: set[str] = set()
    order: list[str] = []
    while len(done) != len(deps):
        progressed = False
        for name in sorted(deps):
            if name in done:
                continue
            dep = deps[name]
            if dep is not None and dep not in done:
                continue
            done.add(name)
            order.append(name)
            progressed = True
        if not progressed:
            pending = sorted(set(deps) - done)
            raise TransformError(f"cannot resolve extends for: {', '.join(pending)}")
    return order


@dataclass
class Sort:
    """Sort block items, fields and enum variants into a canonical order."""

    @classmethod
    def from_config(cls, data: Any) -> Sort:
        _config(data, "Sort")
        return cls()

    def run(self, ir: IR) -> None:
        for b in ir.blocks.values():
            b.items.sort(key=lambda i: (i.byte_offset, i.name))
        for fs in ir.fieldsets.values():
            fs.fields.sort(
                key=lambda f: (f.bit_offset.min_offset(), f.bit_offset.max_offset(), f.name)
            )
        for e in ir.enums.values():
            e.variants.sort(key=lambda v: (v.value, v.name))


_SANITIZERS: dict[NameKind, Callable[[str], str]] = {
    NameKind.DEVICE: sanitize_path,
    NameKind.DEVICE_PERIPHERAL: util.sanitized_constant_case,
    NameKind.DEVICE_INTERRUPT: util.sanitized_constant_case,
    NameKind.BLOCK: sanitize_path,
    NameKind.FIELDSET: sanitize_path,
    NameKind.ENUM: sanitize_path,
    NameKind.BLOCK_ITEM: util.sanitized_snake_case,
    NameKind.FIELD: util.sanitized_snake_case,
    NameKind.ENUM_VARIANT: util.sanitized_constant_case,
}


@dataclass
class Sanitize:
    """Turn every name into a valid identifier in its conventional case."""

    @classmethod
    def from_config(cls, data: Any) -> Sanitize:
        _config(data, "Sanitize")
        return cls()

    def run(self, ir: IR) -> None:
        map_names(ir, lambda kind, name: _SANITIZERS[kind](name))


@dataclass
class Add:
    """Merge a literal IR into the target."""

    ir: IR = field(default_factory=IR)

    @classmethod
    def from_config(cls, data: Any) -> Add:
        data = _config(data, "Add")
        try:
            return cls(ir=IR.from_dict(_get(data, "ir", "Add")))
        except IRError as exc:
            raise TransformError(f"Add: {exc}") from exc

    def run(self, ir: IR) -> None:
        ir.merge(copy.deepcopy(self.ir))


@dataclass
class AddEnumVariants:
    enum: RegexSet
    variants: list[EnumVariant]

    @classmethod
    def from_config(cls, data: Any) -> AddEnumVariants:
        what = "AddEnumVariants"
        data = _config(data, what)
        return cls(
            enum=RegexSet.from_config(_get(data, "enum", what)),
            variants=_parse_list(data, "variants", what, EnumVariant.from_dict),
        )

    def run(self, ir: IR) -> None:
        for name in match_all(ir.enums, self.enum):
            ir.enums[name].variants.extend(copy.deepcopy(self.variants))


@dataclass
class AddFields:
    fieldset: RegexSet
    fields: list[Field]

    @classmethod
    def from_config(cls, data: Any) -> AddFields:
        what = "AddFields"
        data = _config(data, what)
        return cls(
            fieldset=RegexSet.from_config(_get(data, "fieldset", what)),
            fields=_parse_list(data, "fields", what, Field.from_dict),
        )

    def run(self, ir: IR) -> None:
        for name in match_all(ir.fieldsets, self.fieldset):
            ir.fieldsets[name].fields.extend(copy.deepcopy(self.fields))


@dataclass
class AddRegisters:
    block: RegexSet
    registers: list[BlockItem]

    @classmethod
    def from_config(cls, data: Any) -> AddRegisters:
        what = "AddRegisters"
        data = _config(data, what)
        return cls(
            block=RegexSet.from_config(_get(data, "block", what)),
            registers=_parse_list(data, "registers", what, BlockItem.from_dict),
        )

    def run(self, ir: IR) -> None:
        for name in match_all(ir.blocks, self.block):
            ir.blocks[name].items.extend(copy.deepcopy(self.registers))


@dataclass
class AddInterrupts:
    devices: RegexSet
    interrupts: list[Interrupt]

    @classmethod
    def from_config(cls, data: Any) -> AddInterrupts:
        what = "AddInterrupts"
        data = _config(data, what)
        return cls(
            devices=RegexSet.from_config(_get(data, "devices", what)),
            interrupts=_parse_list(data, "interrupts", what, Interrupt.from_dict),
        )

    def run(self, ir: IR) -> None:
        for name in match_all(ir.devices, self.devices):
            ir.devices[name].interrupts.extend(copy.deepcopy(self.interrupts))


@dataclass
class ExpandExtends:
    """Copy inherited items and fields into blocks and fieldsets that extend others."""

    @classmethod
    def from_config(cls, data: Any) -> ExpandExtends:
        _config(data, "ExpandExtends")
        return cls()

    def run(self, ir: IR) -> None:
        for name in topological_sort({k: v.extends for k, v in ir.blocks.items()}):
            block = ir.blocks[name]
            if block.extends is None:
                continue
            for item in copy.deepcopy(ir.blocks[block.extends].items):
                if not any(j.name == item.name for j in block.items):
                    block.items.append(item)

        for name in topological_sort({k: v.extends for k, v in ir.fieldsets.items()}):
            fs = ir.fieldsets[name]
            if fs.extends is None:
                continue
            for f in copy.deepcopy(ir.fieldsets[fs.extends].fields):
                if not any(j.name == f.name for j in fs.fields):
                    fs.fields.append(f)


def _register_width(bits: int) -> int:
    if bits <= 8:
        return 8
    if bits <= 16:
        return 16
    if bits <= 32:
        return 32
    if bits <= 64:
        return 64
    raise TransformError(f"Invalid register bit size {bits}")


@dataclass
class FixRegisterBitSizes:
    """Round register sizes up to 8, 16, 32 or 64 bits."""

    create_fieldsets: bool

    @classmethod
    def from_config(cls, data: Any) -> FixRegisterBitSizes:
        what = "FixRegisterBitSizes"
        data = _config(data, what)
        value = _get(data, "create_fieldsets", what)
        if not isinstance(value, bool):
            raise TransformError(f"{what}: field `create_fieldsets` must be a boolean")
        return cls(create_fieldsets=value)

    def run(self, ir: IR) -> None:
        for bname in sorted(ir.blocks):
            for item in ir.blocks[bname].items:
                reg = item.inner
                if not isinstance(reg, Register):
                    continue
                orig = reg.bit_size
                good = _register_width(orig)
                if orig == good:
                    continue
                reg.bit_size = good
                if reg.fieldset is None:
                    if not self.create_fieldsets:
                        continue
                    if item.name in ir.fieldsets:
                        raise TransformError(f"dup fieldset {item.name}")
                    reg.fieldset = item.name
                    ir.fieldsets[item.name] = FieldSet(
                        bit_size=good,
                        fields=[Field(name="val", bit_offset=BitOffset(0), bit_size=orig)],
                    )
                else:
                    fs = ir.fieldsets.get(reg.fieldset)
                    if fs is None:
                        raise TransformError(f"fieldset {reg.fieldset} does not exist")
                    fs.bit_size = good


@dataclass
class ModifyByteOffset:
    """Shift the byte offset of block items by a signed amount."""

    blocks: RegexSet
    add_offset: int
    exclude_items: RegexSet | None = None
    strict: bool | None = None

    @classmethod
    def from_config(cls, data: Any) -> ModifyByteOffset:
        what = "ModifyByteOffset"
        data = _config(data, what)
        add = _get(data, "add_offset", what)
        if isinstance(add, bool) or not isinstance(add, int) or not -(1 << 31) <= add < 1 << 31:
            raise TransformError(f"{what}: `add_offset` must be a 32-bit signed integer")
        exclude = data.get("exclude_items")
        return cls(
            blocks=RegexSet.from_config(_get(data, "blocks", what)),
            add_offset=add,
            exclude_items=None if exclude is None else RegexSet.from_config(exclude),
            strict=_opt_bool(data, "strict", what),
        )

    def run(self, ir: IR) -> None:
        strict = bool(self.strict)
        errors: list[tuple[str, str]] = []
        for bname in match_all(ir.blocks, self.blocks):
            for item in ir.blocks[bname].items:
                if self.exclude_items is not None and self.exclude_items.is_match(item.name):
                    continue
                new_offset = item.byte_offset + self.add_offset
                if 0 <= new_offset < 1 << 32:
                    item.byte_offset = new_offset
                elif strict:
                    errors.append((bname, item.name))
        if errors:
            raise TransformError(
                "".join(
                    f"Block: {b} Item: {i}: byte_offset out of range after modify\n"
                    for b, i in errors
                )
            )


@dataclass
class ModifyFieldsEnum:
    """Point matching fields at the single enum matched by `enum`."""

    fieldset: RegexSet
    field: RegexSet
    enum: RegexSet

    @classmethod
    def from_config(cls, data: Any) -> ModifyFieldsEnum:
        what = "ModifyFieldsEnum"
        data = _config(data, what)
        return cls(
            fieldset=RegexSet.from_config(_get(data, "fieldset", what)),
            field=RegexSet.from_config(_get(data, "field", what)),
            enum=RegexSet.from_config(_get(data, "enum", what)),
        )

    def run(self, ir: IR) -> None:
        matched = match_all(ir.enums, self.enum)
        if len(matched) != 1:
            raise TransformError(f"Expected exactly one enum to match, found {len(matched)}")
        enum_id = matched[0]
        for fsname in match_all(ir.fieldsets, self.fieldset):
            for f in ir.fieldsets[fsname].fields:
                if self.field.is_match(f.name):
                    f.enum = enum_id