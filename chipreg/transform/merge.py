"""Transforms that merge items together or group them into arrays and blocks."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from chipreg.ir import IR, BitOffset, Block, BlockItem, BlockItemBlock, Enum, EnumVariant
from chipreg.transform.common import (
    ArrayMode,
    CheckLevel,
    RegexSet,
    TransformError,
    append_variant_desc_to_field,
    calc_array,
    check_mergeable_fieldsets,
    extract_variant_desc,
    match_all,
    match_expand,
    match_groups,
    replace_block_ids,
    replace_enum_ids,
    replace_fieldset_ids,
)

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


def _opt_regex(data: Mapping, key: str) -> RegexSet | None:
    value = data.get(key)
    return None if value is None else RegexSet.from_config(value)


def _str(data: Mapping, key: str, what: str) -> str:
    value = _get(data, key, what)
    if not isinstance(value, str):
        raise TransformError(f"{what}: field `{key}` must be a string")
    return value


def _bool(data: Mapping, key: str, what: str, default: bool | None) -> bool | None:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise TransformError(f"{what}: field `{key}` must be a boolean")
    return value


def _pick_main(ids: list[str], main: RegexSet | None) -> str:
    if main is not None:
        for name in ids:
            if main.is_match(name):
                return name
    return ids[0]


def mergeable_variants(a: EnumVariant, b: EnumVariant, level: CheckLevel) -> bool:
    ok = True
    if level >= CheckLevel.LAYOUT:
        ok = ok and a.value == b.value
    if level >= CheckLevel.NAMES:
        ok = ok and a.name == b.name
    if level >= CheckLevel.DESCRIPTIONS:
        ok = ok and a.description == b.description
    return ok


def _check_mergeable_enums_inner(a: Enum, b: Enum, level: CheckLevel) -> None:
    if a.bit_size != b.bit_size:
        raise TransformError(f"Different bit size: {a.bit_size} vs {b.bit_size}")
    if level >= CheckLevel.LAYOUT:
        if len(a.variants) != len(b.variants):
            raise TransformError("Different variant count")
        taken: set[int] = set()
        for va in a.variants:
            match = next(
                (
                    ib
                    for ib, vb in enumerate(b.variants)
                    if ib not in taken and mergeable_variants(va, vb, level)
                ),
                None,
            )
            if match is None:
                raise TransformError(f"Variant in first enum has no match: {va!r}")
            taken.add(match)


def check_mergeable_enums(a_id: str, a: Enum, b_id: str, b: Enum, level: CheckLevel) -> None:
    """Raise TransformError if enums `a` and `b` cannot be merged at `level`."""
    try:
        _check_mergeable_enums_inner(a, b, level)
    except TransformError as exc:
        raise TransformError(
            f"Cannot merge enums.\nfirst: {a_id}\n{a!r}\nsecond: {b_id}\n{b!r}\ncause: {exc}"
        ) from exc


@dataclass
class MergeBlocks:
    """Replace groups of blocks by one block, repointing all references."""

    from_: RegexSet
    to: str
    main: RegexSet | None = None
    check: CheckLevel = CheckLevel.NAMES

    @classmethod
    def from_config(cls, data: Any) -> MergeBlocks:
        what = "MergeBlocks"
        data = _config(data, what)
        return cls(
            from_=_regex(data, "from", what),
            to=_str(data, "to", what),
            main=_opt_regex(data, "main"),
            check=CheckLevel.from_config(data.get("check")),
        )

    def run(self, ir: IR) -> None:
        for to, group in match_groups(list(ir.blocks), self.from_, self.to).items():
            log.info("Merging blocks, dest: %s", to)
            for name in group:
                log.info("   %s", name)
            self._merge(ir, group, to)

    def _merge(self, ir: IR, ids: list[str], to: str) -> None:
        main_id = _pick_main(ids, self.main)
        block = copy.deepcopy(ir.blocks[main_id])
        replace_block_ids(ir, ids, to)
        for name in ids:
            del ir.blocks[name]
        ir.blocks[to] = block


@dataclass
class MergeEnums:
    """Replace groups of equivalent enums by one enum."""

    from_: RegexSet
    to: str
    main: RegexSet | None = None
    check: CheckLevel = CheckLevel.NAMES
    skip_unmergeable: bool = False
    keep_desc: bool | None = None

    @classmethod
    def from_config(cls, data: Any) -> MergeEnums:
        what = "MergeEnums"
        data = _config(data, what)
        return cls(
            from_=_regex(data, "from", what),
            to=_str(data, "to", what),
            main=_opt_regex(data, "main"),
            check=CheckLevel.from_config(data.get("check")),
            skip_unmergeable=_bool(data, "skip_unmergeable", what, False),
            keep_desc=_bool(data, "keep_desc", what, None),
        )

    def run(self, ir: IR) -> None:
        if self.keep_desc:
            descs = extract_variant_desc(ir, self.from_, None)
            append_variant_desc_to_field(ir, descs, None)

        for to, group in match_groups(list(ir.enums), self.from_, self.to).items():
            log.info("Merging enums, dest: %s", to)
            for name in group:
                log.info("   %s", name)
            self._merge(ir, group, to)

    def _merge(self, ir: IR, ids: list[str], to: str) -> None:
        main_id = _pick_main(ids, self.main)
        merged = copy.deepcopy(ir.enums[main_id])
        for name in ids:
            try:
                check_mergeable_enums(main_id, merged, name, ir.enums[name], self.check)
            except TransformError:
                if self.skip_unmergeable:
                    log.info("skipping: %s", to)
                    return
                raise
        for name in ids:
            del ir.enums[name]
        if to in ir.enums:
            raise TransformError(f"enum {to} already exists")
        ir.enums[to] = merged
        replace_enum_ids(ir, ids, to)


@dataclass
class MergeFieldsets:
    """Replace groups of equivalent fieldsets by one fieldset."""

    from_: RegexSet
    to: str
    main: RegexSet | None = None
    check: CheckLevel = CheckLevel.NAMES

    @classmethod
    def from_config(cls, data: Any) -> MergeFieldsets:
        what = "MergeFieldsets"
        data = _config(data, what)
        return cls(
            from_=_regex(data, "from", what),
            to=_str(data, "to", what),
            main=_opt_regex(data, "main"),
            check=CheckLevel.from_config(data.get("check")),
        )

    def run(self, ir: IR) -> None:
        for to, group in match_groups(list(ir.fieldsets), self.from_, self.to).items():
            log.info("Merging fieldsets, dest: %s", to)
            for name in group:
                log.info("   %s", name)
            self._merge(ir, group, to)

    def _merge(self, ir: IR, ids: list[str], to: str) -> None:
        main_id = _pick_main(ids, self.main)
        merged = copy.deepcopy(ir.fieldsets[main_id])
        for name in ids:
            check_mergeable_fieldsets(main_id, merged, name, ir.fieldsets[name], self.check)
        for name in ids:
            del ir.fieldsets[name]
        if to in ir.fieldsets:
            raise TransformError(f"fieldset {to} already exists")
        ir.fieldsets[to] = merged
        replace_fieldset_ids(ir, ids, to)


def _without(items: list, names: Iterable[str]) -> list:
    names = set(names)
    return [i for i in items if i.name not in names]


@dataclass
class MakeBlock:
    """Move groups of block items into a new sub-block."""

    blocks: RegexSet
    from_: RegexSet
    to_outer: str
    to_block: str
    to_inner: str

    @classmethod
    def from_config(cls, data: Any) -> MakeBlock:
        what = "MakeBlock"
        data = _config(data, what)
        return cls(
            blocks=_regex(data, "blocks", what),
            from_=_regex(data, "from", what),
            to_outer=_str(data, "to_outer", what),
            to_block=_str(data, "to_block", what),
            to_inner=_str(data, "to_inner", what),
        )

    def run(self, ir: IR) -> None:
        for bname in match_all(ir.blocks, self.blocks):
            names = [i.name for i in ir.blocks[bname].items]
            for to, group in match_groups(names, self.from_, self.to_outer).items():
                log.info("blockifizing to %s", to)
                members = set(group)
                items = sorted(
                    (i for i in ir.blocks[bname].items if i.name in members),
                    key=lambda i: i.byte_offset,
                )
                for i in items:
                    log.info("    %s", i.name)
                base = items[0].byte_offset

                inner_items = []
                for i in items:
                    item = copy.deepcopy(i)
                    item.name = match_expand(i.name, self.from_, self.to_inner)
                    item.byte_offset -= base
                    inner_items.append(item)

                dest = self.to_block
                ir.blocks[dest] = Block(extends=None, description=None, items=inner_items)

                outer = ir.blocks[bname]
                outer.items[:] = _without(outer.items, members)
                outer.items.append(
                    BlockItem(
                        name=to,
                        description=None,
                        array=None,
                        byte_offset=base,
                        inner=BlockItemBlock(block=dest),
                    )
                )


@dataclass
class MakeFieldArray:
    """Turn groups of fields into one array field."""

    fieldsets: RegexSet
    from_: RegexSet
    to: str
    mode: ArrayMode = ArrayMode.STANDARD

    @classmethod
    def from_config(cls, data: Any) -> MakeFieldArray:
        what = "MakeFieldArray"
        data = _config(data, what)
        return cls(
            fieldsets=_regex(data, "fieldsets", what),
            from_=_regex(data, "from", what),
            to=_str(data, "to", what),
            mode=ArrayMode.from_config(data.get("mode")),
        )

    def run(self, ir: IR) -> None:
        for fsname in match_all(ir.fieldsets, self.fieldsets):
            fs = ir.fieldsets[fsname]
            names = [f.name for f in fs.fields]
            for to, group in match_groups(names, self.from_, self.to).items():
                log.info("arrayizing to %s", to)
                members = set(group)
                items = [f for f in fs.fields if f.name in members]

                cursed = [f.bit_offset.is_cursed for f in items]
                if any(cursed) and not all(cursed):
                    raise TransformError(f"arrayize: items {to} cannot mix bit_offset type")

                items.sort(key=lambda f: (f.bit_offset.min_offset(), f.bit_offset.max_offset()))
                for f in items:
                    log.info("    %s", f.name)

                offset, array = calc_array(
                    [f.bit_offset.min_offset() for f in items], self.mode
                )
                item = copy.deepcopy(items[0])
                fs.fields[:] = _without(fs.fields, members)
                item.name = to
                item.array = array
                item.bit_offset = BitOffset(offset)
                fs.fields.append(item)


@dataclass
class MakeRegisterArray:
    """Turn groups of block items into one array item."""

    blocks: RegexSet
    from_: RegexSet
    to: str
    mode: ArrayMode = ArrayMode.STANDARD

    @classmethod
    def from_config(cls, data: Any) -> MakeRegisterArray:
        what = "MakeRegisterArray"
        data = _config(data, what)
        return cls(
            blocks=_regex(data, "blocks", what),
            from_=_regex(data, "from", what),
            to=_str(data, "to", what),
            mode=ArrayMode.from_config(data.get("mode")),
        )

    def run(self, ir: IR) -> None:
        for bname in match_all(ir.blocks, self.blocks):
            b = ir.blocks[bname]
            names = [i.name for i in b.items]
            for to, group in match_groups(names, self.from_, self.to).items():
                log.info("arrayizing to %s", to)
                members = set(group)
                items = sorted(
                    (i for i in b.items if i.name in members), key=lambda i: i.byte_offset
                )
                for i in items:
                    log.info("    %s", i.name)

                offset, array = calc_array([i.byte_offset for i in items], self.mode)
                item = copy.deepcopy(items[0])
                b.items[:] = _without(b.items, members)
                item.name = to
                item.array = array
                item.byte_offset = offset
                b.items.append(item)