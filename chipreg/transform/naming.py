"""Renaming helpers that keep cross references in an IR consistent."""

from __future__ import annotations

import enum
from collections.abc import Callable
from typing import TypeVar

from chipreg.ir import IR, BlockItemBlock, Register
from chipreg.transform.common import TransformError

T = TypeVar("T")


class NameKind(enum.Enum):
    """The kind of name handed to a renaming function."""

    DEVICE = "Device"
    DEVICE_PERIPHERAL = "DevicePeripheral"
    DEVICE_INTERRUPT = "DeviceInterrupt"
    BLOCK = "Block"
    BLOCK_ITEM = "BlockItem"
    FIELDSET = "Fieldset"
    FIELD = "Field"
    ENUM = "Enum"
    ENUM_VARIANT = "EnumVariant"


class NameCollisionError(TransformError):
    """Raised when renaming maps two items onto the same name.

    `collisions` holds `(kind, old_name, new_name)` tuples.
    """

    def __init__(self, collisions: list[tuple[NameKind, str, str]]) -> None:
        self.collisions = list(collisions)
        lines = (
            f'Err: on rename {kind.value} "{old}", new name "{new}" already exist'
            for kind, old, new in self.collisions
        )
        super().__init__("\n".join(lines))


def _remap(kind: NameKind, table: dict[str, T], fn: Callable[[str], str]) -> dict[str, T]:
    renamed: dict[str, T] = {}
    collisions: list[tuple[NameKind, str, str]] = []
    for name in sorted(table):
        new_name = fn(name)
        if new_name in renamed:
            collisions.append((kind, name, new_name))
        renamed[new_name] = table[name]
    if collisions:
        raise NameCollisionError(collisions)
    return {k: renamed[k] for k in sorted(renamed)}


def map_block_names(ir: IR, fn: Callable[[str], str]) -> None:
    """Rename blocks and every reference to them."""
    ir.blocks = _remap(NameKind.BLOCK, ir.blocks, fn)
    for d in ir.devices.values():
        for p in d.peripherals:
            if p.block is not None:
                p.block = fn(p.block)
    for b in ir.blocks.values():
        for item in b.items:
            if isinstance(item.inner, BlockItemBlock):
                item.inner.block = fn(item.inner.block)


def map_fieldset_names(ir: IR, fn: Callable[[str], str]) -> None:
    """Rename fieldsets and every register referring to them."""
    ir.fieldsets = _remap(NameKind.FIELDSET, ir.fieldsets, fn)
    for b in ir.blocks.values():
        for item in b.items:
            if isinstance(item.inner, Register) and item.inner.fieldset is not None:
                item.inner.fieldset = fn(item.inner.fieldset)


def map_enum_names(ir: IR, fn: Callable[[str], str]) -> None:
    """Rename enums and every field referring to them."""
    ir.enums = _remap(NameKind.ENUM, ir.enums, fn)
    for fs in ir.fieldsets.values():
        for f in fs.fields:
            if f.enum is not None:
                f.enum = fn(f.enum)


def map_device_names(ir: IR, fn: Callable[[str], str]) -> None:
    ir.devices = _remap(NameKind.DEVICE, ir.devices, fn)


def map_device_interrupt_names(ir: IR, fn: Callable[[str], str]) -> None:
    for d in ir.devices.values():
        for i in d.interrupts:
            i.name = fn(i.name)


def map_device_peripheral_names(ir: IR, fn: Callable[[str], str]) -> None:
    for d in ir.devices.values():
        for p in d.peripherals:
            p.name = fn(p.name)


def map_block_item_names(ir: IR, fn: Callable[[str], str]) -> None:
    for b in ir.blocks.values():
        for item in b.items:
            item.name = fn(item.name)


def map_field_names(ir: IR, fn: Callable[[str], str]) -> None:
    for fs in ir.fieldsets.values():
        for f in fs.fields:
            f.name = fn(f.name)


def map_enum_variant_names(ir: IR, fn: Callable[[str], str]) -> None:
    for e in ir.enums.values():
        for v in e.variants:
            v.name = fn(v.name)


def map_names(ir: IR, fn: Callable[[NameKind, str], str]) -> None:
    """Rename every name in `ir`, telling `fn` what kind of name it gets."""
    map_device_names(ir, lambda s: fn(NameKind.DEVICE, s))
    map_device_peripheral_names(ir, lambda s: fn(NameKind.DEVICE_PERIPHERAL, s))
    map_device_interrupt_names(ir, lambda s: fn(NameKind.DEVICE_INTERRUPT, s))
    map_block_names(ir, lambda s: fn(NameKind.BLOCK, s))
    map_block_item_names(ir, lambda s: fn(NameKind.BLOCK_ITEM, s))
    map_fieldset_names(ir, lambda s: fn(NameKind.FIELDSET, s))
    map_field_names(ir, lambda s: fn(NameKind.FIELD, s))
    map_enum_names(ir, lambda s: fn(NameKind.ENUM, s))
    map_enum_variant_names(ir, lambda s: fn(NameKind.ENUM_VARIANT, s))


def map_descriptions(ir: IR, fn: Callable[[str], str]) -> None:
    """Apply `fn` to every present description of blocks, fieldsets and enums."""

    def apply(obj) -> None:
        if obj.description is not None:
            obj.description = fn(obj.description)

    for b in ir.blocks.values():
        apply(b)
        for item in b.items:
            apply(item)
    for fs in ir.fieldsets.values():
        apply(fs)
        for f in fs.fields:
            apply(f)
    for e in ir.enums.values():
        apply(e)
        for v in e.variants:
            apply(v)