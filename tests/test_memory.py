import pytest

from rvsim.hardware import CPU, mask, sign_extend
from rvsim.memory import MemError, MemModule, parse_hex_image, perform_access

LOAD, STORE = 1, 2
BYTE, HALF, WORD, BYTE_U, HALF_U = 0, 1, 2, 4, 5


def test_parse_hex_image_places_bytes():
    image = parse_hex_image("@00000000\n37 01 02 00\n@10\nFF\n")
    assert image == {0x0: 0x37, 0x1: 0x01, 0x2: 0x02, 0x3: 0x00, 0x10: 0xFF}


def test_parse_hex_image_truncates_to_byte():
    assert parse_hex_image("1FF") == {0: mask(0x1FF, 8)}


@pytest.mark.parametrize("text", ["zz", "@xyz 00", "@"])
def test_parse_hex_image_rejects_garbage(text):
    with pytest.raises(MemError):
        parse_hex_image(text)


def test_loaded_image_reads_as_little_endian_word():
    image = parse_hex_image("@1000 13 05 f0 0f")
    assert perform_access(image, LOAD, WORD, 0x1000) == 0x0FF00513


@pytest.mark.parametrize("value", [0, 1, 0x12345678, 0xFFFFFFFF, 0x80000000])
def test_store_load_word_round_trip(value):
    memory = {}
    assert perform_access(memory, STORE, WORD, 0x200, value) == 0
    assert perform_access(memory, LOAD, WORD, 0x200) == value


def test_store_is_little_endian():
    memory = {}
    perform_access(memory, STORE, WORD, 0x100, 0x11223344)
    assert memory == {0x100: 0x44, 0x101: 0x33, 0x102: 0x22, 0x103: 0x11}
    assert perform_access(memory, LOAD, BYTE_U, 0x103) == 0x11


def test_half_word_signed_and_unsigned():
    memory = {}
    perform_access(memory, STORE, HALF, 0x40, 0xABCD8001)
    assert sorted(memory) == [0x40, 0x41]
    assert perform_access(memory, LOAD, HALF_U, 0x40) == 0x8001
    assert perform_access(memory, LOAD, HALF, 0x40) == sign_extend(0x8001, 16)


def test_byte_signed_and_unsigned():
    memory = {}
    perform_access(memory, STORE, BYTE, 0x7, 0x1280)
    assert list(memory) == [0x7]
    assert perform_access(memory, LOAD, BYTE_U, 0x7) == 0x80
    assert perform_access(memory, LOAD, BYTE, 0x7) == sign_extend(0x80, 8)


def test_unmapped_memory_reads_zero():
    memory = {}
    assert perform_access(memory, LOAD, WORD, 0xDEAD0) == 0
    assert memory == {}


def test_address_wraps_around():
    memory = {}
    perform_access(memory, STORE, WORD, 0xFFFFFFFE, 0x11223344)
    assert sorted(memory) == [0, 1, 0xFFFFFFFE, 0xFFFFFFFF]
    assert perform_access(memory, LOAD, WORD, 0xFFFFFFFE) == 0x11223344


@pytest.mark.parametrize("issue, mode", [(LOAD, 3), (LOAD, 6), (STORE, 4), (3, 0), (0, 0)])
def test_bad_access_raises(issue, mode):
    with pytest.raises(MemError):
        perform_access({}, issue, mode, 0, 0)


def _wired_memory(memory, controls):
    unit = MemModule(memory)
    for name in ("addr", "delta", "value", "issue", "mode"):
        getattr(unit, name).connect(lambda name=name: controls[name])
    cpu = CPU()
    cpu.add_module(unit)
    return cpu, unit


def test_module_load_with_offset():
    memory = parse_hex_image("@20 78 56 34 12")
    controls = {"addr": 0x24, "delta": mask(-4, 32), "value": 0, "issue": LOAD, "mode": WORD}
    cpu, unit = _wired_memory(memory, controls)
    cpu.run_once()
    assert unit.fin.value == 0
    controls["issue"] = 0
    cpu.run_once()
    assert unit.fin.value == 1
    assert unit.result.value == 0x12345678
    cpu.run_once()
    assert unit.fin.value == 0


def test_module_store_updates_shared_memory():
    memory = {}
    controls = {"addr": 0x10, "delta": 0, "value": 0xCAFEBABE, "issue": STORE, "mode": WORD}
    cpu, unit = _wired_memory(memory, controls)
    cpu.run_once()
    controls["issue"] = 0
    cpu.run_once()
    assert unit.fin.value == 1
    assert unit.result.value == 0
    assert perform_access(memory, LOAD, WORD, 0x10) == 0xCAFEBABE


def test_module_rejects_issue_while_busy():
    controls = {"addr": 0, "delta": 0, "value": 0, "issue": LOAD, "mode": WORD}
    cpu, _ = _wired_memory({}, controls)
    cpu.run_once()
    with pytest.raises(MemError):
        cpu.run_once()