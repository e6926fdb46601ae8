import pytest

from chipreg.ir import IR, CursedArray, RegularArray
from chipreg.transform.common import ArrayMode, CheckLevel, TransformError
from chipreg.transform.merge import (
    MakeBlock,
    MakeFieldArray,
    MakeRegisterArray,
    MergeBlocks,
    MergeEnums,
    MergeFieldsets,
    check_mergeable_enums,
    mergeable_variants,
)


def _ir(data):
    return IR.from_dict(data)


def _onoff(desc_off=None, desc_on=None, bit_size=1):
    off = {"name": "OFF", "value": 0}
    on = {"name": "ON", "value": 1}
    if desc_off is not None:
        off["description"] = desc_off
    if desc_on is not None:
        on["description"] = desc_on
    return {"bit_size": bit_size, "variants": [off, on]}


def _enum_ir():
    return _ir(
        {
            "fieldset/CR": {
                "fields": [
                    {"name": "a", "bit_offset": 0, "bit_size": 1, "enum": "e1"},
                    {"name": "b", "bit_offset": 1, "bit_size": 1, "enum": "e2"},
                ]
            },
            "enum/e1": _onoff("off", "on"),
            "enum/e2": _onoff("off", "on"),
        }
    )


def test_merge_blocks_repoints_references():
    ir = _ir(
        {
            "device/chip": {
                "peripherals": [
                    {"name": "UART1", "base_address": 4096, "block": "uart1"},
                    {"name": "UART2", "base_address": 8192, "block": "uart2"},
                ],
                "interrupts": [],
            },
            "block/uart1": {"items": [{"name": "dr", "byte_offset": 0}]},
            "block/uart2": {"items": [{"name": "dr", "byte_offset": 0}]},
        }
    )
    MergeBlocks.from_config({"from": r"uart\d", "to": "uart"}).run(ir)
    assert sorted(ir.blocks) == ["uart"]
    assert [p.block for p in ir.devices["chip"].peripherals] == ["uart", "uart"]


def test_merge_blocks_main_selects_source():
    ir = _ir(
        {
            "block/uart1": {"items": [{"name": "dr", "byte_offset": 0}]},
            "block/uart2": {"items": [{"name": "sr", "byte_offset": 4}]},
        }
    )
    MergeBlocks.from_config({"from": r"uart\d", "to": "uart", "main": "uart2"}).run(ir)
    assert [i.name for i in ir.blocks["uart"].items] == ["sr"]


def test_merge_enums_replaces_field_references():
    ir = _enum_ir()
    MergeEnums.from_config({"from": r"e\d", "to": "E"}).run(ir)
    assert sorted(ir.enums) == ["E"]
    assert [f.enum for f in ir.fieldsets["CR"].fields] == ["E", "E"]


def test_merge_enums_mismatch_raises():
    ir = _enum_ir()
    ir.enums["e2"].variants[0].name = "DISABLED"
    with pytest.raises(TransformError):
        MergeEnums.from_config({"from": r"e\d", "to": "E"}).run(ir)


def test_merge_enums_skip_unmergeable_leaves_ir_unchanged():
    ir = _enum_ir()
    ir.enums["e2"].variants[0].name = "DISABLED"
    before = ir.to_dict()
    MergeEnums.from_config({"from": r"e\d", "to": "E", "skip_unmergeable": True}).run(ir)
    assert ir.to_dict() == before


def test_merge_enums_no_check_ignores_names():
    ir = _enum_ir()
    ir.enums["e2"].variants[0].name = "DISABLED"
    MergeEnums.from_config({"from": r"e\d", "to": "E", "check": "NoCheck"}).run(ir)
    assert list(ir.enums) == ["E"]


def test_merge_enums_keep_desc_appends_variant_text():
    ir = _enum_ir()
    MergeEnums.from_config({"from": r"e\d", "to": "E", "keep_desc": True}).run(ir)
    descs = [f.description for f in ir.fieldsets["CR"].fields]
    assert descs == ["0: off\n1: on\n", "0: off\n1: on\n"]


def test_merge_enums_config_defaults():
    t = MergeEnums.from_config({"from": "a", "to": "b"})
    assert t.check == CheckLevel.NAMES
    assert t.skip_unmergeable is False
    assert t.main is None


def test_merge_enums_config_missing_to():
    with pytest.raises(TransformError):
        MergeEnums.from_config({"from": "a"})


def test_check_mergeable_enums_bit_size():
    ir = _ir({"enum/a": _onoff(), "enum/b": _onoff(bit_size=2)})
    with pytest.raises(TransformError):
        check_mergeable_enums("a", ir.enums["a"], "b", ir.enums["b"], CheckLevel.NO_CHECK)


def test_mergeable_variants_levels():
    ir = _ir({"enum/a": _onoff("x", "y"), "enum/b": _onoff("z", "y")})
    va = ir.enums["a"].variants[0]
    vb = ir.enums["b"].variants[0]
    assert mergeable_variants(va, vb, CheckLevel.NAMES)
    assert not mergeable_variants(va, vb, CheckLevel.DESCRIPTIONS)
    assert not mergeable_variants(va, ir.enums["b"].variants[1], CheckLevel.LAYOUT)


def _fieldset_ir(second_name="en"):
    return _ir(
        {
            "block/B": {
                "items": [
                    {"name": "r1", "byte_offset": 0, "fieldset": "cr1"},
                    {"name": "r2", "byte_offset": 4, "fieldset": "cr2"},
                ]
            },
            "fieldset/cr1": {"fields": [{"name": "en", "bit_offset": 0, "bit_size": 1}]},
            "fieldset/cr2": {"fields": [{"name": second_name, "bit_offset": 0, "bit_size": 1}]},
        }
    )


def test_merge_fieldsets():
    ir = _fieldset_ir()
    MergeFieldsets.from_config({"from": r"cr\d", "to": "CR"}).run(ir)
    assert list(ir.fieldsets) == ["CR"]
    assert [i.inner.fieldset for i in ir.blocks["B"].items] == ["CR", "CR"]


def test_merge_fieldsets_mismatch_raises():
    ir = _fieldset_ir("enable")
    with pytest.raises(TransformError):
        MergeFieldsets.from_config({"from": r"cr\d", "to": "CR"}).run(ir)


def test_make_block_groups_items():
    ir = _ir(
        {
            "block/dma": {
                "items": [
                    {"name": "ch0_cr", "byte_offset": 16},
                    {"name": "ch0_ndtr", "byte_offset": 20},
                    {"name": "ch1_cr", "byte_offset": 36},
                    {"name": "ch1_ndtr", "byte_offset": 40},
                    {"name": "isr", "byte_offset": 0},
                ]
            }
        }
    )
    MakeBlock.from_config(
        {
            "blocks": "dma",
            "from": r"ch(\d)_(\w+)",
            "to_outer": "ch$1",
            "to_block": "dma_ch",
            "to_inner": "$2",
        }
    ).run(ir)
    outer = {i.name: i for i in ir.blocks["dma"].items}
    assert sorted(outer) == ["ch0", "ch1", "isr"]
    assert outer["ch0"].byte_offset == 16
    assert outer["ch1"].byte_offset == 36
    assert outer["ch1"].inner.block == "dma_ch"
    inner = [(i.name, i.byte_offset) for i in ir.blocks["dma_ch"].items]
    assert inner == [("cr", 0), ("ndtr", 4)]


def _regs_ir(offsets):
    return _ir(
        {
            "block/B": {
                "items": [
                    {"name": f"dr{n}", "byte_offset": off} for n, off in enumerate(offsets)
                ]
            }
        }
    )


def test_make_register_array_regular():
    ir = _regs_ir([8, 0, 4])
    MakeRegisterArray.from_config({"blocks": "B", "from": r"dr\d", "to": "dr"}).run(ir)
    items = ir.blocks["B"].items
    assert [i.name for i in items] == ["dr"]
    assert items[0].byte_offset == 0
    assert items[0].array == RegularArray(len=3, stride=4)


def test_make_register_array_irregular_standard_raises():
    ir = _regs_ir([0, 4, 12])
    with pytest.raises(TransformError):
        MakeRegisterArray.from_config({"blocks": "B", "from": r"dr\d", "to": "dr"}).run(ir)


def test_make_register_array_cursed():
    ir = _regs_ir([16, 20, 28])
    t = MakeRegisterArray.from_config(
        {"blocks": "B", "from": r"dr\d", "to": "dr", "mode": "Cursed"}
    )
    assert t.mode is ArrayMode.CURSED
    t.run(ir)
    item = ir.blocks["B"].items[0]
    assert item.byte_offset == 16
    assert item.array == CursedArray(offsets=[0, 4, 12])


def test_make_field_array():
    ir = _ir(
        {
            "fieldset/CR": {
                "fields": [
                    {"name": "en2", "bit_offset": 4, "bit_size": 1},
                    {"name": "en0", "bit_offset": 2, "bit_size": 1},
                    {"name": "en1", "bit_offset": 3, "bit_size": 1},
                    {"name": "mode", "bit_offset": 8, "bit_size": 2},
                ]
            }
        }
    )
    MakeFieldArray.from_config({"fieldsets": "CR", "from": r"en\d", "to": "en"}).run(ir)
    fields = {f.name: f for f in ir.fieldsets["CR"].fields}
    assert sorted(fields) == ["en", "mode"]
    assert fields["en"].bit_offset.min_offset() == 2
    assert fields["en"].array == RegularArray(len=3, stride=1)
    assert fields["mode"].array is None