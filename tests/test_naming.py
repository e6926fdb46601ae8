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
from chipreg.transform.naming import (
    NameCollisionError,
    NameKind,
    map_block_item_names,
    map_block_names,
    map_descriptions,
    map_device_interrupt_names,
    map_device_names,
    map_device_peripheral_names,
    map_enum_names,
    map_enum_variant_names,
    map_field_names,
    map_fieldset_names,
    map_names,
)


def make_ir() -> IR:
    return IR(
        devices={
            "dev": Device(
                peripherals=[Peripheral(name="uart", base_address=0x1000, block="Uart")],
                interrupts=[Interrupt(name="irq", value=1)],
            )
        },
        blocks={
            "Uart": Block(
                items=[
                    BlockItem(name="cr", byte_offset=0, inner=Register(fieldset="Cr"),
                              description="control"),
                    BlockItem(name="sub", byte_offset=4, inner=BlockItemBlock(block="Sub")),
                ],
                description="uart block",
            ),
            "Sub": Block(items=[BlockItem(name="dr", byte_offset=0)]),
        },
        fieldsets={
            "Cr": FieldSet(
                fields=[Field(name="en", bit_offset=BitOffset(0), bit_size=1, enum="En")]
            )
        },
        enums={
            "En": Enum(
                bit_size=1,
                variants=[EnumVariant(name="off", value=0), EnumVariant(name="on", value=1,
                                                                         description="on")],
            )
        },
    )


def test_map_block_names_updates_references():
    ir = make_ir()
    map_block_names(ir, lambda s: "p::" + s)
    assert sorted(ir.blocks) == ["p::Sub", "p::Uart"]
    assert ir.devices["dev"].peripherals[0].block == "p::Uart"
    assert ir.blocks["p::Uart"].items[1].inner.block == "p::Sub"
    assert list(ir.fieldsets) == ["Cr"]


def test_map_fieldset_names_updates_registers():
    ir = make_ir()
    map_fieldset_names(ir, lambda s: s + "Reg")
    assert list(ir.fieldsets) == ["CrReg"]
    assert ir.blocks["Uart"].items[0].inner.fieldset == "CrReg"


def test_map_enum_names_updates_fields():
    ir = make_ir()
    map_enum_names(ir, str.lower)
    assert list(ir.enums) == ["en"]
    assert ir.fieldsets["Cr"].fields[0].enum == "en"


def test_map_device_names():
    ir = make_ir()
    map_device_names(ir, str.upper)
    assert list(ir.devices) == ["DEV"]


def test_collision_raises_and_keeps_table():
    ir = make_ir()
    with pytest.raises(NameCollisionError) as info:
        map_block_names(ir, lambda s: "same")
    assert isinstance(info.value, TransformError)
    assert info.value.collisions == [(NameKind.BLOCK, "Uart", "same")]
    assert sorted(ir.blocks) == ["Sub", "Uart"]


def test_item_level_renames():
    ir = make_ir()
    map_device_interrupt_names(ir, str.upper)
    map_device_peripheral_names(ir, str.upper)
    map_block_item_names(ir, str.upper)
    map_field_names(ir, str.upper)
    map_enum_variant_names(ir, str.upper)
    assert ir.devices["dev"].interrupts[0].name == "IRQ"
    assert ir.devices["dev"].peripherals[0].name == "UART"
    assert [i.name for i in ir.blocks["Uart"].items] == ["CR", "SUB"]
    assert ir.fieldsets["Cr"].fields[0].name == "EN"
    assert [v.name for v in ir.enums["En"].variants] == ["OFF", "ON"]


def test_map_names_passes_every_kind():
    ir = make_ir()
    seen = set()

    def record(kind, name):
        seen.add(kind)
        return name

    map_names(ir, record)
    assert seen == set(NameKind)
    assert ir == make_ir()


def test_map_descriptions_only_present():
    ir = make_ir()
    map_descriptions(ir, str.upper)
    assert ir.blocks["Uart"].description == "UART BLOCK"
    assert ir.blocks["Uart"].items[0].description == "CONTROL"
    assert ir.blocks["Uart"].items[1].description is None
    assert ir.enums["En"].variants[1].description == "ON"
    assert ir.enums["En"].variants[0].description is None
    assert ir.fieldsets["Cr"].description is None