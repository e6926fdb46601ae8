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
    Interrupt,
    Peripheral,
    Register,
)
from chipreg.transform.common import TransformError
from chipreg.transform.naming import NameCollisionError
from chipreg.transform.rename import (
    Rename,
    RenameEnumVariants,
    RenameFields,
    RenameInterrupts,
    RenamePeripherals,
    RenameRegisters,
    RenameType,
    ResizeEnums,
)


def make_ir():
    ir = IR()
    ir.enums["ModeE"] = Enum(
        bit_size=2,
        variants=[EnumVariant(name="MODE_A", value=0), EnumVariant(name="MODE_B", value=3)],
    )
    ir.fieldsets["CrFs"] = FieldSet(
        fields=[
            Field(name="mode", bit_offset=BitOffset(0), bit_size=2, enum="ModeE"),
            Field(name="en", bit_offset=BitOffset(4), bit_size=1),
        ]
    )
    ir.blocks["InnerBlk"] = Block(items=[BlockItem(name="x", byte_offset=0)])
    ir.blocks["UartBlk"] = Block(
        items=[
            BlockItem(name="cr1", byte_offset=0, inner=Register(fieldset="CrFs")),
            BlockItem(name="inner", byte_offset=4, inner=BlockItemBlock(block="InnerBlk")),
        ]
    )
    ir.devices["chip"] = Device(
        peripherals=[Peripheral(name="UART_0", base_address=0x1000, block="UartBlk")],
        interrupts=[Interrupt(name="UART_0_IRQ", value=3)],
    )
    return ir


def test_rename_blocks_updates_references():
    ir = make_ir()
    Rename.from_config({"from": "(.*)Blk", "to": "$1", "type": "Block"}).run(ir)
    assert sorted(ir.blocks) == ["Inner", "Uart"]
    assert ir.devices["chip"].peripherals[0].block == "Uart"
    assert ir.blocks["Uart"].items[1].inner.block == "Inner"
    assert sorted(ir.fieldsets) == ["CrFs"]


def test_rename_all_kinds():
    ir = make_ir()
    Rename.from_config({"from": "(.*)(Blk|Fs|E)", "to": "p::$1", "type": "All"}).run(ir)
    assert sorted(ir.blocks) == ["p::Inner", "p::Uart"]
    assert sorted(ir.fieldsets) == ["p::Cr"]
    assert sorted(ir.enums) == ["p::Mode"]
    assert ir.blocks["p::Uart"].items[0].inner.fieldset == "p::Cr"
    assert ir.fieldsets["p::Cr"].fields[0].enum == "p::Mode"


def test_rename_only_enums_leaves_others():
    ir = make_ir()
    Rename.from_config({"from": "ModeE", "to": "Mode", "type": "Enum"}).run(ir)
    assert sorted(ir.enums) == ["Mode"]
    assert sorted(ir.blocks) == ["InnerBlk", "UartBlk"]


def test_rename_collision_raises():
    ir = make_ir()
    with pytest.raises(NameCollisionError):
        Rename.from_config({"from": ".*Blk", "to": "Same", "type": "Block"}).run(ir)


def test_rename_type_required_and_checked():
    with pytest.raises(TransformError):
        Rename.from_config({"from": "a", "to": "b"})
    with pytest.raises(TransformError):
        Rename.from_config({"from": "a", "to": "b", "type": "Bogus"})
    assert Rename.from_config({"from": "a", "to": "b", "type": "Fieldset"}).type is RenameType.FIELDSET


def test_rename_fields():
    ir = make_ir()
    RenameFields.from_config({"fieldset": "CrFs", "from": "en", "to": "enable"}).run(ir)
    assert [f.name for f in ir.fieldsets["CrFs"].fields] == ["mode", "enable"]


def test_rename_registers():
    ir = make_ir()
    RenameRegisters.from_config({"block": "UartBlk", "from": "cr(\\d)", "to": "ctrl$1"}).run(ir)
    assert [i.name for i in ir.blocks["UartBlk"].items] == ["ctrl1", "inner"]


def test_rename_enum_variants():
    ir = make_ir()
    RenameEnumVariants.from_config({"enum": "ModeE", "from": "MODE_(.*)", "to": "$1"}).run(ir)
    assert [v.name for v in ir.enums["ModeE"].variants] == ["A", "B"]


def test_rename_interrupts_and_peripherals():
    ir = make_ir()
    RenameInterrupts.from_config({"from": "(.*)_IRQ", "to": "$1"}).run(ir)
    RenamePeripherals.from_config({"from": "UART_(\\d)", "to": "USART$1"}).run(ir)
    assert [i.name for i in ir.devices["chip"].interrupts] == ["UART_0"]
    assert [p.name for p in ir.devices["chip"].peripherals] == ["USART0"]


def test_resize_enums_updates_fields():
    ir = make_ir()
    ResizeEnums.from_config({"enum": "ModeE", "bit_size": 3}).run(ir)
    assert ir.enums["ModeE"].bit_size == 3
    assert ir.fieldsets["CrFs"].fields[0].bit_size == 3
    assert ir.fieldsets["CrFs"].fields[1].bit_size == 1


def test_resize_enums_zero_raises():
    ir = make_ir()
    with pytest.raises(TransformError):
        ResizeEnums.from_config({"enum": "ModeE", "bit_size": 0}).run(ir)


def test_resize_enums_variant_out_of_range():
    ir = make_ir()
    with pytest.raises(TransformError):
        ResizeEnums.from_config({"enum": "ModeE", "bit_size": 1}).run(ir)


def test_resize_enums_too_large():
    ir = make_ir()
    with pytest.raises(TransformError):
        ResizeEnums.from_config({"enum": "ModeE", "bit_size": 64}).run(ir)


def test_resize_enums_overlap_raises():
    ir = make_ir()
    with pytest.raises(TransformError):
        ResizeEnums.from_config({"enum": "ModeE", "bit_size": 6}).run(ir)


def test_resize_enums_config_errors():
    with pytest.raises(TransformError):
        ResizeEnums.from_config({"enum": "ModeE"})
    with pytest.raises(TransformError):
        ResizeEnums.from_config({"enum": "ModeE", "bit_size": -1})