"""Command line entry point: transform, reformat and check IR YAML files."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chipreg.ir import IR, IRError, dump_ir, load_ir
from chipreg.transform.basic import Sort
from chipreg.transform.common import TransformError
from chipreg.transform.registry import parse_transforms
from chipreg.validate import Options, validate

log = logging.getLogger(__name__)


@dataclass
class Config:
    """A transform file: other transform files to apply first, then transforms."""

    includes: list[str] = field(default_factory=list)
    transforms: list[Any] = field(default_factory=list)


def load_config(path: str | Path) -> Config:
    """Read and parse a transform configuration file."""
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise TransformError(f"cannot deserialize config {path}: {exc}") from exc
    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise TransformError(f"cannot deserialize config {path}: expected a mapping")
    unknown = set(data) - {"includes", "transforms"}
    if unknown:
        raise TransformError(
            f"cannot deserialize config {path}: unknown field(s) {', '.join(sorted(unknown))}"
        )
    includes = data.get("includes") or []
    if not isinstance(includes, list) or not all(isinstance(i, str) for i in includes):
        raise TransformError(f"cannot deserialize config {path}: includes must be a list of paths")
    return Config(includes=list(includes), transforms=parse_transforms(data.get("transforms")))


def apply_transform(ir: IR, path: str | Path) -> None:
    """Apply the transform file at `path`, its includes first, to `ir`."""
    path = Path(path)
    log.info("applying transform %s", path)
    config = load_config(path)
    for include in config.includes:
        apply_transform(ir, path.parent / include)
    for transform in config.transforms:
        log.info("running %r", transform)
        transform.run(ir)


def transform_file(
    input_path: str | Path, output_path: str | Path, transform_path: str | Path
) -> None:
    """Load an IR file, apply a transform file and write the result."""
    ir = load_ir(Path(input_path).read_text(encoding="utf-8"))
    apply_transform(ir, transform_path)
    Path(output_path).write_text(dump_ir(ir), encoding="utf-8")


def _trim(obj: Any) -> None:
    if obj.description is not None:
        obj.description = obj.description.strip()


def _formatted(ir: IR, remove_unused: bool) -> str:
    if remove_unused:
        used = {f.enum for fs in ir.fieldsets.values() for f in fs.fields if f.enum is not None}
        ir.enums = {name: e for name, e in ir.enums.items() if name in used}

    Sort().run(ir)

    for b in ir.blocks.values():
        _trim(b)
        for item in b.items:
            _trim(item)
    for fs in ir.fieldsets.values():
        _trim(fs)
        for f in fs.fields:
            _trim(f)
    for e in ir.enums.values():
        _trim(e)
        for v in e.variants:
            _trim(v)

    return dump_ir(ir)


def format_files(files: Iterable[str | Path], check: bool = False, remove_unused: bool = False) -> None:
    """Rewrite each file in canonical form; with `check`, raise instead of rewriting."""
    for file in files:
        path = Path(file)
        got = path.read_bytes()
        want = _formatted(load_ir(got.decode("utf-8")), remove_unused)
        if got != want.encode("utf-8"):
            if check:
                raise ValueError(f"File {file} is not correctly formatted")
            path.write_text(want, encoding="utf-8")


def check_files(files: Iterable[str | Path], options: Options | None = None) -> list[str]:
    """Validate each file and return its problems as `file: message` lines."""
    options = options or Options()
    problems: list[str] = []
    for file in files:
        ir = load_ir(Path(file).read_text(encoding="utf-8"))
        problems.extend(f"{file}: {err}" for err in validate(ir, options))
    return problems


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chipreg", description="Register description tool.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("transform", help="Apply transform to YAML")
    p.add_argument("-i", "--input", required=True, help="Input YAML path")
    p.add_argument("-o", "--output", required=True, help="Output YAML path")
    p.add_argument("-t", "--transform", required=True, help="Transforms file path")

    p = sub.add_parser("fmt", help="Reformat a YAML")
    p.add_argument("files", nargs="*", help="Peripheral file path")
    p.add_argument("--check", action="store_true",
                   help="Error if incorrectly formatted, instead of fixing.")
    p.add_argument("--remove-unused", action="store_true", help="Remove unused enums")

    p = sub.add_parser("check", help="Check a YAML for errors.")
    p.add_argument("files", nargs="*", help="Peripheral file path")
    p.add_argument("--allow-register-overlap", action="store_true")
    p.add_argument("--allow-field-overlap", action="store_true")
    p.add_argument("--allow-enum-dup-value", action="store_true")
    p.add_argument("--allow-unused-enums", action="store_true")
    p.add_argument("--allow-unused-fieldsets", action="store_true")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line tool and return its exit status."""
    logging.basicConfig(level=logging.WARNING)
    args = _parser().parse_args(argv)

    try:
        if args.command == "transform":
            transform_file(args.input, args.output, args.transform)
        elif args.command == "fmt":
            format_files(args.files, check=args.check, remove_unused=args.remove_unused)
        else:
            options = Options(
                allow_register_overlap=args.allow_register_overlap,
                allow_field_overlap=args.allow_field_overlap,
                allow_enum_dup_value=args.allow_enum_dup_value,
                allow_unused_enums=args.allow_unused_enums,
                allow_unused_fieldsets=args.allow_unused_fieldsets,
            )
            problems = check_files(args.files, options)
            for line in problems:
                print(line)
            if problems:
                raise ValueError(f"{len(problems)} failures")
    except (OSError, ValueError, TransformError, IRError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())