import io

import pytest

from rvsim.cli import build_cpu, main, memtest_main, run_program
from rvsim.control import ControlError, ControlModule, Halt

HALT = 0x0FF00513


def i_type(imm, rs1, funct3, rd, opcode=0x13):
    return ((imm & 0xFFF) << 20) | (rs1 << 15) | (funct3 << 12) | (rd << 7) | opcode


def s_type(imm, rs2, rs1, funct3):
    imm &= 0xFFF
    return ((imm >> 5) << 25) | (rs2 << 20) | (rs1 << 15) | (funct3 << 12) | ((imm & 0x1F) << 7) | 0x23


def b_type(imm, rs2, rs1, funct3):
    imm &= 0x1FFF
    return (
        (((imm >> 12) & 1) << 31)
        | (((imm >> 5) & 0x3F) << 25)
        | (rs2 << 20)
        | (rs1 << 15)
        | (funct3 << 12)
        | (((imm >> 1) & 0xF) << 8)
        | (((imm >> 11) & 1) << 7)
        | 0x63
    )


def image(*words):
    data = b"".join(word.to_bytes(4, "little") for word in words)
    return "@00000000\n" + " ".join(f"{byte:02x}" for byte in data) + "\n"


STORE_LOAD = (
    i_type(0x7F, 0, 0, 1),
    s_type(0x100, 1, 0, 2),
    i_type(0x100, 0, 2, 10, opcode=0x03),
    HALT,
)


def test_program_returns_a0():
    assert run_program(image(i_type(42, 0, 0, 10), HALT)) == 42


def test_store_then_load_round_trip():
    assert run_program(image(*STORE_LOAD)) == 0x7F


def test_counting_loop_with_backward_branch():
    program = image(
        i_type(0, 0, 0, 10),
        i_type(5, 0, 0, 1),
        i_type(3, 10, 0, 10),
        i_type(-1, 1, 0, 1),
        b_type(-8, 0, 1, 1),
        HALT,
    )
    assert run_program(program) == 15


def test_program_without_halt_returns_none():
    assert run_program(image(0x0000006F), max_cycles=200) is None


def test_undecodable_instruction_raises():
    with pytest.raises(ControlError):
        run_program(image(0xFFFFFFFF))


def test_build_cpu_shares_memory():
    memory = {}
    text = image(*STORE_LOAD)
    for offset, token in enumerate(text.split()[1:]):
        memory[offset] = int(token, 16)
    cpu = build_cpu(memory)
    assert len(cpu.modules) == 3
    with pytest.raises(Halt):
        cpu.run(10_000)
    assert memory[0x100] == 0x7F
    control = next(m for m in cpu.modules if isinstance(m, ControlModule))
    assert int(control.reg[10]) == 0x7F


def test_main_prints_exit_code(tmp_path, capsys):
    path = tmp_path / "program.data"
    path.write_text(image(i_type(42, 0, 0, 10), HALT))
    assert main([str(path)]) == 0
    assert capsys.readouterr().out == "42\n"


def test_main_reads_standard_input(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO(image(*STORE_LOAD)))
    main([])
    assert capsys.readouterr().out == f"{0x7F}\n"


def test_main_reports_faults(tmp_path, capsys):
    path = tmp_path / "bad.data"
    path.write_text(image(0xFFFFFFFF))
    main([str(path)])
    assert capsys.readouterr().out == "oops\n"


def test_main_prints_nothing_when_not_halted(tmp_path, capsys):
    path = tmp_path / "spin.data"
    path.write_text(image(0x0000006F))
    main([str(path), "--max-cycles", "100"])
    assert capsys.readouterr().out == ""


@pytest.fixture
def sample(tmp_path):
    path = tmp_path / "sample.data"
    path.write_text("@0\n78 56 34 12 80\n")
    return str(path)


def test_memtest_loads_word(sample, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("0 1 2 0\n"))
    assert memtest_main([sample]) == 0
    assert capsys.readouterr().out == "12345678\n"


def test_memtest_store_then_load(sample, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("10 2 2 deadbeef\n10 1 2 0\n"))
    memtest_main([sample])
    assert capsys.readouterr().out.split() == ["0", "deadbeef"]


def test_memtest_sign_extends_byte(sample, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("4 1 0 0 4 1 4 0"))
    memtest_main([sample])
    assert capsys.readouterr().out.split() == ["ffffff80", "80"]


def test_memtest_rejects_bad_mode(sample, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("0 1 7 0\n"))
    assert memtest_main([sample]) == 1