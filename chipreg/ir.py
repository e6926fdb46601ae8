"""Intermediate representation of devices, register blocks, fieldsets and enums."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

import yaml


class IRError(ValueError):
    """Raised when IR data is malformed."""


class Access(str, enum.Enum):
    """Access mode of a register."""

    READ_WRITE = "ReadWrite"
    READ = "Read"
    WRITE = "Write"


_MISSING = object()


def _mapping(data: Any, what: str) -> Mapping:
    if not isinstance(data, Mapping):
        raise IRError(f"{what}: expected a mapping, got {type(data).__name__}")
    return data


def _value(data: Mapping, key: str, what: str, default: Any = _MISSING) -> Any:
    if key in data:
        return data[key]
    if default is _MISSING:
        raise IRError(f"{what}: missing field `{key}`")
    return default


def _check_int(value: Any, what: str, key: str, limit: int = 1 << 64) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < limit:
        raise IRError(f"{what}: field `{key}` must be an unsigned integer, got {value!r}")
    return value


def _int(data: Mapping, key: str, what: str, default: Any = _MISSING, limit: int = 1 << 64) -> int:
    return _check_int(_value(data, key, what, default), what, key, limit)


def _str(data: Mapping, key: str, what: str) -> str:
    value = _value(data, key, what)
    if not isinstance(value, str):
        raise IRError(f"{what}: field `{key}` must be a string, got {value!r}")
    return value


def _opt_str(data: Mapping, key: str, what: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise IRError(f"{what}: field `{key}` must be a string, got {value!r}")
    return value


def _seq(data: Mapping, key: str, what: str) -> list:
    value = _value(data, key, what)
    if not isinstance(value, list):
        raise IRError(f"{what}: field `{key}` must be a list, got {value!r}")
    return value


@dataclass
class RegularArray:
    """Array of evenly spaced elements."""

    len: int
    stride: int

    def __len__(self) -> int:
        return self.len

    def to_dict(self) -> dict:
        return {"len": self.len, "stride": self.stride}


@dataclass
class CursedArray:
    """Array whose elements sit at arbitrary offsets."""

    offsets: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.offsets)

    def to_dict(self) -> dict:
        return {"offsets": list(self.offsets)}


Array = Union[RegularArray, CursedArray]


def array_from_dict(data: Any) -> Array:
    """Build a regular or cursed array from its mapping form."""
    data = _mapping(data, "array")
    if "len" in data and "stride" in data:
        return RegularArray(
            len=_int(data, "len", "array", limit=1 << 32),
            stride=_int(data, "stride", "array", limit=1 << 32),
        )
    if "offsets" in data:
        offsets = [_check_int(o, "array", "offsets", 1 << 32) for o in _seq(data, "offsets", "array")]
        return CursedArray(offsets=offsets)
    raise IRError("array: expected either `len` and `stride`, or `offsets`")


def _opt_array(data: Mapping) -> Array | None:
    value = data.get("array")
    return None if value is None else array_from_dict(value)


Range = tuple[int, int]


@dataclass(frozen=True)
class BitOffset:
    """Bit position of a field: a single offset or a sorted list of inclusive ranges.

    Ordering compares the lowest bit first and the highest bit second.
    """

    value: int | tuple[Range, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.value, int):
            object.__setattr__(self, "value", tuple((int(s), int(e)) for s, e in self.value))

    @property
    def is_cursed(self) -> bool:
        return not isinstance(self.value, int)

    def min_offset(self) -> int:
        if isinstance(self.value, int):
            return self.value
        return self.value[0][0]

    def max_offset(self) -> int:
        if isinstance(self.value, int):
            return self.value
        return self.value[-1][1]

    def to_ranges(self, bit_size: int) -> list[Range]:
        """Expand into inclusive (start, end) ranges."""
        if isinstance(self.value, int):
            return [(self.value, self.value + bit_size - 1)]
        return list(self.value)

    def to_data(self) -> int | list[dict]:
        if isinstance(self.value, int):
            return self.value
        return [{"start": s, "end": e} for s, e in self.value]

    @classmethod
    def from_data(cls, data: Any) -> BitOffset:
        if isinstance(data, int) and not isinstance(data, bool):
            return cls(_check_int(data, "bit_offset", "bit_offset", 1 << 32))
        if isinstance(data, list):
            if not data:
                raise IRError("bit_offset: range list must not be empty")
            ranges = []
            for item in data:
                if isinstance(item, Mapping):
                    start = _int(item, "start", "bit_offset", limit=1 << 32)
                    end = _int(item, "end", "bit_offset", limit=1 << 32)
                elif isinstance(item, list) and len(item) == 2:
                    start, end = (_check_int(x, "bit_offset", "range", 1 << 32) for x in item)
                else:
                    raise IRError(f"bit_offset: invalid range {item!r}")
                ranges.append((start, end))
            return cls(tuple(ranges))
        raise IRError(f"bit_offset: expected an integer or a list of ranges, got {data!r}")

    def _key(self) -> tuple[int, int]:
        return (self.min_offset(), self.max_offset())

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, BitOffset):
            return NotImplemented
        return self._key() < other._key()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, BitOffset):
            return NotImplemented
        return self._key() <= other._key()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, BitOffset):
            return NotImplemented
        return self._key() > other._key()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, BitOffset):
            return NotImplemented
        return self._key() >= other._key()


@dataclass
class Interrupt:
    name: str
    value: int
    description: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"name": self.name}
        if self.description is not None:
            out["description"] = self.description
        out["value"] = self.value
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Interrupt:
        data = _mapping(data, "interrupt")
        return cls(
            name=_str(data, "name", "interrupt"),
            value=_int(data, "value", "interrupt", limit=1 << 32),
            description=_opt_str(data, "description", "interrupt"),
        )


@dataclass
class Peripheral:
    name: str
    base_address: int
    description: str | None = None
    array: Array | None = None
    block: str | None = None
    interrupts: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        out: dict = {"name": self.name}
        if self.description is not None:
            out["description"] = self.description
        out["base_address"] = self.base_address
        if self.array is not None:
            out["array"] = self.array.to_dict()
        if self.block is not None:
            out["block"] = self.block
        if self.interrupts:
            out["interrupts"] = {k: self.interrupts[k] for k in sorted(self.interrupts)}
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Peripheral:
        what = "peripheral"
        data = _mapping(data, what)
        interrupts = _mapping(data.get("interrupts") or {}, what)
        for key, value in interrupts.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise IRError(f"{what}: interrupts must map strings to strings")
        return cls(
            name=_str(data, "name", what),
            base_address=_int(data, "base_address", what),
            description=_opt_str(data, "description", what),
            array=_opt_array(data),
            block=_opt_str(data, "block", what),
            interrupts=dict(interrupts),
        )


@dataclass
class Device:
    peripherals: list[Peripheral] = field(default_factory=list)
    interrupts: list[Interrupt] = field(default_factory=list)
    nvic_priority_bits: int | None = None

    def to_dict(self) -> dict:
        out: dict = {}
        if self.nvic_priority_bits is not None:
            out["nvic_priority_bits"] = self.nvic_priority_bits
        out["peripherals"] = [p.to_dict() for p in self.peripherals]
        out["interrupts"] = [i.to_dict() for i in self.interrupts]
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Device:
        what = "device"
        data = _mapping(data, what)
        bits = data.get("nvic_priority_bits")
        return cls(
            peripherals=[Peripheral.from_dict(p) for p in _seq(data, "peripherals", what)],
            interrupts=[Interrupt.from_dict(i) for i in _seq(data, "interrupts", what)],
            nvic_priority_bits=None if bits is None else _check_int(bits, what, "nvic_priority_bits", 1 << 8),
        )


@dataclass
class Register:
    access: Access = Access.READ_WRITE
    bit_size: int = 32
    fieldset: str | None = None


@dataclass
class BlockItemBlock:
    block: str


@dataclass
class BlockItem:
    name: str
    byte_offset: int
    inner: Register | BlockItemBlock = field(default_factory=Register)
    description: str | None = None
    array: Array | None = None

    def to_dict(self) -> dict:
        out: dict = {"name": self.name}
        if self.description is not None:
            out["description"] = self.description
        if self.array is not None:
            out["array"] = self.array.to_dict()
        out["byte_offset"] = self.byte_offset
        if isinstance(self.inner, BlockItemBlock):
            out["block"] = self.inner.block
        else:
            if self.inner.access is not Access.READ_WRITE:
                out["access"] = self.inner.access.value
            if self.inner.bit_size != 32:
                out["bit_size"] = self.inner.bit_size
            if self.inner.fieldset is not None:
                out["fieldset"] = self.inner.fieldset
        return out

    @classmethod
    def from_dict(cls, data: Any) -> BlockItem:
        what = "block item"
        data = _mapping(data, what)
        inner: Register | BlockItemBlock
        if "block" in data:
            inner = BlockItemBlock(block=_str(data, "block", what))
        else:
            try:
                access = Access(data.get("access", Access.READ_WRITE.value))
            except ValueError as exc:
                raise IRError(f"{what}: unknown access {data.get('access')!r}") from exc
            inner = Register(
                access=access,
                bit_size=_int(data, "bit_size", what, 32, 1 << 32),
                fieldset=_opt_str(data, "fieldset", what),
            )
        return cls(
            name=_str(data, "name", what),
            byte_offset=_int(data, "byte_offset", what, limit=1 << 32),
            inner=inner,
            description=_opt_str(data, "description", what),
            array=_opt_array(data),
        )


@dataclass
class Block:
    items: list[BlockItem] = field(default_factory=list)
    extends: str | None = None
    description: str | None = None

    def to_dict(self) -> dict:
        out: dict = {}
        if self.extends is not None:
            out["extends"] = self.extends
        if self.description is not None:
            out["description"] = self.description
        out["items"] = [i.to_dict() for i in self.items]
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Block:
        data = _mapping(data, "block")
        return cls(
            items=[BlockItem.from_dict(i) for i in _seq(data, "items", "block")],
            extends=_opt_str(data, "extends", "block"),
            description=_opt_str(data, "description", "block"),
        )


@dataclass
class Field:
    name: str
    bit_offset: BitOffset
    bit_size: int
    description: str | None = None
    array: Array | None = None
    enum: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"name": self.name}
        if self.description is not None:
            out["description"] = self.description
        out["bit_offset"] = self.bit_offset.to_data()
        out["bit_size"] = self.bit_size
        if self.array is not None:
            out["array"] = self.array.to_dict()
        if self.enum is not None:
            out["enum"] = self.enum
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Field:
        what = "field"
        data = _mapping(data, what)
        return cls(
            name=_str(data, "name", what),
            bit_offset=BitOffset.from_data(_value(data, "bit_offset", what)),
            bit_size=_int(data, "bit_size", what, limit=1 << 32),
            description=_opt_str(data, "description", what),
            array=_opt_array(data),
            enum=_opt_str(data, "enum", what),
        )


@dataclass
class FieldSet:
    fields: list[Field] = field(default_factory=list)
    extends: str | None = None
    description: str | None = None
    bit_size: int = 32

    def to_dict(self) -> dict:
        out: dict = {}
        if self.extends is not None:
            out["extends"] = self.extends
        if self.description is not None:
            out["description"] = self.description
        if self.bit_size != 32:
            out["bit_size"] = self.bit_size
        out["fields"] = [f.to_dict() for f in self.fields]
        return out

    @classmethod
    def from_dict(cls, data: Any) -> FieldSet:
        what = "fieldset"
        data = _mapping(data, what)
        return cls(
            fields=[Field.from_dict(f) for f in _seq(data, "fields", what)],
            extends=_opt_str(data, "extends", what),
            description=_opt_str(data, "description", what),
            bit_size=_int(data, "bit_size", what, 32, 1 << 32),
        )


@dataclass
class EnumVariant:
    name: str
    value: int
    description: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"name": self.name}
        if self.description is not None:
            out["description"] = self.description
        out["value"] = self.value
        return out

    @classmethod
    def from_dict(cls, data: Any) -> EnumVariant:
        what = "enum variant"
        data = _mapping(data, what)
        return cls(
            name=_str(data, "name", what),
            value=_int(data, "value", what),
            description=_opt_str(data, "description", what),
        )


@dataclass
class Enum:
    bit_size: int
    variants: list[EnumVariant] = field(default_factory=list)
    description: str | None = None

    def to_dict(self) -> dict:
        out: dict = {}
        if self.description is not None:
            out["description"] = self.description
        out["bit_size"] = self.bit_size
        out["variants"] = [v.to_dict() for v in self.variants]
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Enum:
        data = _mapping(data, "enum")
        return cls(
            bit_size=_int(data, "bit_size", "enum", limit=1 << 32),
            variants=[EnumVariant.from_dict(v) for v in _seq(data, "variants", "enum")],
            description=_opt_str(data, "description", "enum"),
        )


@dataclass
class IR:
    """A collection of named devices, blocks, fieldsets and enums."""

    devices: dict[str, Device] = field(default_factory=dict)
    blocks: dict[str, Block] = field(default_factory=dict)
    fieldsets: dict[str, FieldSet] = field(default_factory=dict)
    enums: dict[str, Enum] = field(default_factory=dict)

    def merge(self, other: IR) -> None:
        """Add every item of `other`, replacing items with the same name."""
        self.devices.update(other.devices)
        self.blocks.update(other.blocks)
        self.fieldsets.update(other.fieldsets)
        self.enums.update(other.enums)

    def _tables(self) -> tuple[tuple[str, dict, Any], ...]:
        return (
            ("device", self.devices, Device),
            ("block", self.blocks, Block),
            ("fieldset", self.fieldsets, FieldSet),
            ("enum", self.enums, Enum),
        )

    def to_dict(self) -> dict:
        """Mapping keyed by `kind/name`, ordered by kind then name."""
        out: dict = {}
        for kind, table, _ in self._tables():
            for name in sorted(table):
                out[f"{kind}/{name}"] = table[name].to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Any) -> IR:
        if not isinstance(data, Mapping):
            raise IRError("expected an IR mapping")
        ir = cls()
        tables = {kind: (table, item_cls) for kind, table, item_cls in ir._tables()}
        for key, value in data.items():
            if not isinstance(key, str):
                raise IRError(f"item name must be a string, got {key!r}")
            kind, sep, name = key.partition("/")
            if not sep:
                raise IRError(
                    "item names must be in form `kind/name`, where kind is "
                    "`block`, `device`, `fieldset` or `enum`"
                )
            if kind not in tables:
                raise IRError(f'Unknown kind "{kind}"')
            table, item_cls = tables[kind]
            if name in table:
                raise IRError(f'Duplicate item "{key}"')
            table[name] = item_cls.from_dict(value)
        return ir


class _StrictLoader(yaml.SafeLoader):
    """Safe loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: yaml.SafeLoader, node: yaml.MappingNode) -> dict:
    loader.flatten_mapping(node)
    mapping: dict = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        if key in mapping:
            raise IRError(f'Duplicate item "{key}"')
        mapping[key] = loader.construct_object(value_node, deep=True)
    return mapping


_StrictLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping)


def load_ir(text: str | bytes) -> IR:
    """Parse YAML text into an IR."""
    try:
        data = yaml.load(text, Loader=_StrictLoader)
    except yaml.YAMLError as exc:
        raise IRError(f"invalid YAML: {exc}") from exc
    return IR.from_dict(data)


def dump_ir(ir: IR) -> str:
    """Render an IR as YAML text with a deterministic key order."""
    return yaml.dump(
        ir.to_dict(),
        Dumper=yaml.SafeDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )