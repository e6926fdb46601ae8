# chipreg

Tools for working with register maps of microcontroller peripherals, kept
as YAML files.

A register map holds four kinds of items, each keyed `kind/name`:

- `device/...`: peripherals with base addresses, and interrupts
- `block/...`: register blocks with items at byte offsets
- `fieldset/...`: the bit fields of a register
- `enum/...`: named values for a field

chipreg reads and writes these files, applies transforms to them (rename,
merge, delete, resize, turn repeated registers or fields into arrays, and
more), writes them back in a stable, sorted order, and checks them for
mistakes.

## Installation

```
pip install chipreg
```

## Command line

Apply a transform file to a register map:

```
chipreg transform -i input.yaml -o output.yaml -t transforms.yaml
```

Reformat files in place: items, fields and variants are sorted and
descriptions are trimmed. With `--check` a file that is not formatted is
reported as an error instead of being rewritten; with `--remove-unused`
enums that no field refers to are dropped:

```
chipreg fmt regs/*.yaml
chipreg fmt --check regs/*.yaml
```

Check files for errors such as missing references, overlapping registers or
fields, enum values that do not fit their bit size, duplicate enum values,
and unused fieldsets or enums:

```
chipreg check regs/*.yaml
chipreg check --allow-field-overlap --allow-unused-enums regs/*.yaml
```

The `check` options are `--allow-register-overlap`, `--allow-field-overlap`,
`--allow-enum-dup-value`, `--allow-unused-enums` and
`--allow-unused-fieldsets`. Every problem is printed as `file: message`.

Each command exits with status 1 and prints the error when it fails,
including when `check` found problems.

## Transform files

A transform file lists other transform files to run first (paths relative
to the file) and then its own transforms, each a mapping with one key naming
the transform:

```yaml
includes:
  - common.yaml
transforms:
  - Rename:
      from: (.*)_BLOCK
      to: $1
      type: Block
  - MakeRegisterArray:
      blocks: .*
      from: CH(\d+)
      to: CH
  - MergeEnums:
      from: .*::(MODE)
      to: $1
  - DeleteUselessEnums: {}
```

The available transforms are `Sanitize`, `Sort`, `Add`, `AddEnumVariants`,
`AddFields`, `AddRegisters`, `AddInterrupts`, `Delete`,
`DeleteEnumVariants`, `DeleteEnums`, `DeleteEnumsWithVariants`,
`DeleteEnumsUsedIn`, `DeleteUselessEnums`, `DeleteFields`,
`DeleteFieldsets`, `DeletePeripherals`, `DeleteRegisters`, `ExpandExtends`,
`MergeBlocks`, `MergeEnums`, `MergeFieldsets`, `Rename`, `RenameFields`,
`RenameRegisters`, `RenameEnumVariants`, `ResizeEnums`,
`MakeRegisterArray`, `MakeFieldArray`, `MakeBlock`, `ModifyByteOffset`,
`ModifyFieldsEnum`, `FixRegisterBitSizes`, `RenameInterrupts` and
`RenamePeripherals`.

Names are matched against regular expressions anchored at both ends. A
matcher may also be given as a mapping with an `include` list and an
optional `exclude` list. Replacement templates use `$1`, `$name` or
`${name}` for groups, and `$$` for a literal dollar sign.

## Library use

```python
from chipreg.ir import load_ir, dump_ir
from chipreg.transform.registry import parse_transforms
from chipreg.validate import Options, validate

with open("regs.yaml") as f:
    ir = load_ir(f.read())

for t in parse_transforms([{"DeleteUselessEnums": {}}]):
    t.run(ir)

errors = validate(ir, Options())
print(dump_ir(ir))
```

Malformed register maps raise `chipreg.ir.IRError`; transforms that cannot
be configured or applied raise `chipreg.transform.common.TransformError`.

## What chipreg does not do

chipreg works only on its own YAML register maps. It does not import
vendor device description files and does not generate source code or
linker scripts from a register map.