import pytest

from chipreg.ir import (
    IR,
    BitOffset,
    Block,
    BlockItem,
    BlockItemBlock,
    Device,
    Enum,
    EnumVariant,
    Field,
    FieldSet,
    Peripheral,
    Register,
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
    is_useless_enum,
    is_useless_fieldset,
    remove_block_ids,
    remove_enum_ids,
    remove_fieldset_ids,
)


def _enum(bit_size, *variants):
    return Enum(bit_size=bit_size, variants=[EnumVariant(name=n, value=v) for n, v in variants])


def make_ir():
    ir = IR()
    ir.enums["Mode"] = _enum(2, ("A", 0), ("B", 1), ("C", 2))
    ir.enums["En"] = _enum(1, ("DISABLED", 0), ("ENABLED", 1))
    ir.fieldsets["Cr"] = FieldSet(
        fields=[
            Field(name="en", bit_offset=BitOffset(0), bit_size=1, enum="En"),
            Field(name="mode", bit_offset=BitOffset(1), bit_size=2, enum="Mode"),
        ]
    )
    ir.fieldsets["Sr"] = FieldSet(fields=[Field(name="val", bit_offset=BitOffset(0), bit_size=32)])
    ir.blocks["Sub"] = Block(items=[BlockItem(name="x", byte_offset=0)])
    ir.blocks["Uart"] = Block(
        items=[
            BlockItem(name="cr", byte_offset=0, inner=Register(fieldset="Cr")),
            BlockItem(name="sr", byte_offset=4, inner=Register(fieldset="Sr")),
            BlockItem(name="sub", byte_offset=8, inner=BlockItemBlock(block="Sub")),
        ]
    )
    ir.devices["dev"] = Device(
        peripherals=[
            Peripheral(name="UART0", base_address=0x1000, block="Uart"),
            Peripheral(name="SUB0", base_address=0x2000, block="Sub"),
        ]
    )
    return ir


def test_remove_enum_ids_clears_references():
    ir = make_ir()
    remove_enum_ids(ir, {"En"})
    assert [f.enum for f in ir.fieldsets["Cr"].fields] == [None, "Mode"]
    assert "En" in ir.enums


def test_remove_fieldset_ids_clears_registers():
    ir = make_ir()
    remove_fieldset_ids(ir, ["Sr"])
    assert [i.inner.fieldset for i in ir.blocks["Uart"].items[:2]] == ["Cr", None]


def test_remove_block_ids_drops_items_and_peripherals():
    ir = make_ir()
    remove_block_ids(ir, ["Sub"])
    assert [i.name for i in ir.blocks["Uart"].items] == ["cr", "sr"]
    assert [p.name for p in ir.devices["dev"].peripherals] == ["UART0"]


@pytest.mark.parametrize(
    "zero, one, expected",
    [
        ("DISABLED", "ENABLED", True),
        ("Off", "On", True),
        ("NOTREADY", "READY", True),
        ("un_set", "set", True),
        ("LOW", "HIGH", False),
    ],
)
def test_is_useless_enum_two_variants(zero, one, expected):
    assert is_useless_enum(_enum(1, (one, 1), (zero, 0))) is expected


def test_is_useless_enum_sizes():
    assert is_useless_enum(_enum(0)) is True
    assert is_useless_enum(_enum(1, ("X", 0))) is True
    assert is_useless_enum(_enum(2, ("DISABLED", 0), ("ENABLED", 1))) is False


def test_is_useless_enum_bad_one_bit_enum():
    with pytest.raises(TransformError):
        is_useless_enum(_enum(1, ("A", 0), ("B", 1), ("C", 1)))


def test_is_useless_fieldset():
    ir = make_ir()
    assert is_useless_fieldset(ir.fieldsets["Sr"]) is True
    assert is_useless_fieldset(ir.fieldsets["Cr"]) is False
    assert is_useless_fieldset(FieldSet()) is True
    assert is_useless_fieldset(
        FieldSet(fields=[Field(name="v", bit_offset=BitOffset(0), bit_size=32, enum="E")])
    ) is False


def test_delete_removes_everything_matching():
    ir = make_ir()
    Delete.from_config({"from": "S.*"}).run(ir)
    assert sorted(ir.fieldsets) == ["Cr"]
    assert sorted(ir.blocks) == ["Uart"]
    assert [i.name for i in ir.blocks["Uart"].items] == ["cr", "sr"]
    assert ir.blocks["Uart"].items[1].inner.fieldset is None
    assert [p.name for p in ir.devices["dev"].peripherals] == ["UART0"]


def test_delete_enum_variants():
    ir = make_ir()
    DeleteEnumVariants.from_config({"enum": "Mode", "from": "[AC]"}).run(ir)
    assert [v.name for v in ir.enums["Mode"].variants] == ["B"]


def test_delete_enums_hard_and_soft():
    ir = make_ir()
    DeleteEnums.from_config({"from": ".*", "bit_size": 1}).run(ir)
    assert sorted(ir.enums) == ["Mode"]
    assert ir.fieldsets["Cr"].fields[0].enum is None

    ir = make_ir()
    DeleteEnums.from_config({"from": "Mode", "soft": True}).run(ir)
    assert "Mode" in ir.enums
    assert ir.fieldsets["Cr"].fields[1].enum is None


def test_delete_enums_keep_desc():
    ir = make_ir()
    ir.enums["En"].variants[0].description = "off"
    ir.enums["En"].variants[1].description = "on"
    DeleteEnums.from_config({"from": "En", "keep_desc": True}).run(ir)
    assert ir.fieldsets["Cr"].fields[0].description == "0: off\n1: on\n"


def test_delete_enums_used_in():
    ir = make_ir()
    DeleteEnumsUsedIn.from_config({"fieldsets": "Cr"}).run(ir)
    assert ir.enums == {}
    assert all(f.enum is None for f in ir.fieldsets["Cr"].fields)


def test_delete_enums_with_variants():
    ir = make_ir()
    DeleteEnumsWithVariants.from_config({"variants": {0: "DISABLED", 1: "ENABLED"}}).run(ir)
    assert sorted(ir.enums) == ["Mode"]

    ir = make_ir()
    DeleteEnumsWithVariants.from_config({"variants": {0: "A", 1: "B"}}).run(ir)
    assert sorted(ir.enums) == ["En", "Mode"]


def test_delete_enums_with_variants_bad_config():
    with pytest.raises(TransformError):
        DeleteEnumsWithVariants.from_config({"variants": {"zero": "A"}})


def test_delete_useless_enums():
    ir = make_ir()
    DeleteUselessEnums.from_config({}).run(ir)
    assert sorted(ir.enums) == ["Mode"]
    assert ir.fieldsets["Cr"].fields[0].enum is None


def test_delete_fields():
    ir = make_ir()
    DeleteFields.from_config({"fieldset": "Cr", "from": "en"}).run(ir)
    assert [f.name for f in ir.fieldsets["Cr"].fields] == ["mode"]


def test_delete_fieldsets_useless_only():
    ir = make_ir()
    DeleteFieldsets.from_config({"from": ".*", "useless": True}).run(ir)
    assert sorted(ir.fieldsets) == ["Cr"]
    assert ir.blocks["Uart"].items[1].inner.fieldset is None


def test_delete_fieldsets_soft_keeps_definitions():
    ir = make_ir()
    DeleteFieldsets.from_config({"from": "Cr", "soft": True}).run(ir)
    assert sorted(ir.fieldsets) == ["Cr", "Sr"]
    assert ir.blocks["Uart"].items[0].inner.fieldset is None


def test_delete_peripherals():
    ir = make_ir()
    DeletePeripherals.from_config({"devices": ".*", "from": "UART.*"}).run(ir)
    assert [p.name for p in ir.devices["dev"].peripherals] == ["SUB0"]


def test_delete_registers():
    ir = make_ir()
    DeleteRegisters.from_config({"block": "Uart", "from": {"include": ".*", "exclude": "cr"}}).run(ir)
    assert [i.name for i in ir.blocks["Uart"].items] == ["cr"]


def test_missing_config_field_raises():
    with pytest.raises(TransformError):
        DeleteFields.from_config({"fieldset": "Cr"})
    with pytest.raises(TransformError):
        DeleteEnums.from_config({"from": "x", "soft": "yes"})