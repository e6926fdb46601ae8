"""Consistency checks for an IR."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations

from chipreg.ir import IR, BlockItemBlock, Field


@dataclass
class Options:
    """Switches that silence individual classes of validation errors."""

    allow_register_overlap: bool = False
    allow_field_overlap: bool = False
    allow_enum_dup_value: bool = False
    allow_unused_enums: bool = False
    allow_unused_fieldsets: bool = False


def fields_overlap(a: Field, b: Field) -> bool:
    """Whether any bit range of `a` overlaps any bit range of `b`."""
    return any(
        e2 > s1 and e1 > s2
        for s1, e1 in a.bit_offset.to_ranges(a.bit_size)
        for s2, e2 in b.bit_offset.to_ranges(b.bit_size)
    )


def _range_error(fsname: str, f: Field) -> str | None:
    """Check the range list of a field whose bit offset is given as ranges."""
    prefix = f"fieldset {fsname} field {f.name}"
    last_max = 0
    total = 0
    for index, (start, end) in enumerate(f.bit_offset.to_ranges(f.bit_size)):
        if start > end:
            return f"{prefix}: end value of bit_offset is bigger than start value"
        if index > 0:
            if start < last_max:
                return f"{prefix}: bit_offset is overlapped with itself"
            if start == last_max:
                return f"{prefix}: bit_offset has continuous part, should be merged"
            last_max = end
        total += end - start + 1
    if total != f.bit_size:
        return f"{prefix}: size of bit_offset ranges is mismatch with field bit_size"
    return None


def validate(ir: IR, options: Options | None = None) -> list[str]:
    """Return a list of human-readable problems found in `ir`."""
    options = options or Options()
    errs: list[str] = []
    used_fieldsets: set[str] = set()
    used_enums: set[str] = set()

    for bname, b in sorted(ir.blocks.items()):
        if b.extends is not None and b.extends not in ir.blocks:
            errs.append(f"block {bname}: extends block {b.extends} does not exist")

        for bi in b.items:
            if isinstance(bi.inner, BlockItemBlock):
                if bi.inner.block not in ir.blocks:
                    errs.append(
                        f"block {bname} item {bi.name}: block {bi.inner.block} does not exist"
                    )
            elif bi.inner.fieldset is not None:
                fs = bi.inner.fieldset
                used_fieldsets.add(fs)
                if fs not in ir.fieldsets:
                    errs.append(f"block {bname} item {bi.name}: fieldset {fs} does not exist")

        if not options.allow_register_overlap:
            for i1, i2 in combinations(b.items, 2):
                if i1.byte_offset == i2.byte_offset:
                    errs.append(f"block {bname}: registers overlap: {i1.name} {i2.name}")

    for fsname, fs in sorted(ir.fieldsets.items()):
        if fs.extends is not None:
            used_fieldsets.add(fs.extends)
            if fs.extends not in ir.fieldsets:
                errs.append(f"fieldset {fsname}: extends fieldset {fs.extends} does not exist")

    for fsname, fs in sorted(ir.fieldsets.items()):
        if not options.allow_unused_fieldsets and fsname not in used_fieldsets:
            errs.append(f"fieldset {fsname} is unused")

        for f in fs.fields:
            if f.enum is None:
                continue
            used_enums.add(f.enum)
            e = ir.enums.get(f.enum)
            if e is None:
                errs.append(
                    f"fieldset {fsname} field {f.name}: enum {f.enum} does not exist"
                )
                continue
            if f.bit_offset.is_cursed:
                problem = _range_error(fsname, f)
                if problem is not None:
                    errs.append(problem)
                    continue
            if f.bit_size != e.bit_size:
                errs.append(
                    f"fieldset {fsname} field {f.name}: bit_size {f.bit_size} "
                    f"does not match enum {f.enum} bit_size {e.bit_size}"
                )

        if not options.allow_field_overlap:
            for f1, f2 in combinations(fs.fields, 2):
                if fields_overlap(f1, f2):
                    errs.append(f"fieldset {fsname}: fields overlap: {f1.name} {f2.name}")

    for ename, e in sorted(ir.enums.items()):
        if not options.allow_unused_enums and ename not in used_enums:
            errs.append(f"enum {ename} is unused")

        maxval = 1 << e.bit_size
        for v in e.variants:
            if v.value >= maxval:
                errs.append(
                    f"enum {ename} variant {v.name}: value {v.value} is not less than "
                    f"than max 1<<{e.bit_size} = {maxval}"
                )

        if not options.allow_enum_dup_value:
            for v1, v2 in combinations(e.variants, 2):
                if v1.value == v2.value:
                    errs.append(f"enum {ename}: variants with same value: {v1.name} {v2.name}")

    return errs