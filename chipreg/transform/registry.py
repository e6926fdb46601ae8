"""Parsing of transform configurations into transform objects."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from chipreg.transform.basic import (
    Add,
    AddEnumVariants,
    AddFields,
    AddInterrupts,
    AddRegisters,
    ExpandExtends,
    FixRegisterBitSizes,
    ModifyByteOffset,
    ModifyFieldsEnum,
    Sanitize,
    Sort,
)
from chipreg.transform.common import TransformError
from chipreg.transform.delete import (
    Delete,
    DeleteEnums,
    DeleteEnumsUsedIn,
    DeleteEnumsWithVariants,
    DeleteEnumVariants,
    DeleteFields,
    DeleteFieldsets,
    DeletePeripherals,
    DeleteRegisters,
    DeleteUselessEnums,
)
from chipreg.transform.merge import (
    MakeBlock,
    MakeFieldArray,
    MakeRegisterArray,
    MergeBlocks,
    MergeEnums,
    MergeFieldsets,
)
from chipreg.transform.rename import (
    Rename,
    RenameEnumVariants,
    RenameFields,
    RenameInterrupts,
    RenamePeripherals,
    RenameRegisters,
    ResizeEnums,
)

_TRANSFORMS = {
    cls.__name__: cls
    for cls in (
        Sanitize,
        Sort,
        Add,
        AddEnumVariants,
        AddFields,
        AddRegisters,
        AddInterrupts,
        Delete,
        DeleteEnumVariants,
        DeleteEnums,
        DeleteEnumsWithVariants,
        DeleteEnumsUsedIn,
        DeleteUselessEnums,
        DeleteFields,
        DeleteFieldsets,
        DeletePeripherals,
        DeleteRegisters,
        ExpandExtends,
        MergeBlocks,
        MergeEnums,
        MergeFieldsets,
        Rename,
        RenameFields,
        RenameRegisters,
        RenameEnumVariants,
        ResizeEnums,
        MakeRegisterArray,
        MakeFieldArray,
        MakeBlock,
        ModifyByteOffset,
        ModifyFieldsEnum,
        FixRegisterBitSizes,
        RenameInterrupts,
        RenamePeripherals,
    )
}


def parse_transform(data: Any):
    """Build a transform from `{Name: {...options}}`, or a bare `Name`."""
    if isinstance(data, str):
        name, options = data, None
    elif isinstance(data, Mapping) and len(data) == 1:
        ((name, options),) = data.items()
    else:
        raise TransformError(f"a transform must be a mapping with one key, got {data!r}")
    cls = _TRANSFORMS.get(name)
    if cls is None:
        raise TransformError(f"unknown transform {name!r}")
    return cls.from_config(options)


def parse_transforms(data: Any) -> list:
    """Build a list of transforms from a list of transform configurations."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise TransformError(f"transforms must be a list, got {data!r}")
    return [parse_transform(item) for item in data]