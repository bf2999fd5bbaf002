import pytest

from loader import (
    OP_DEC,
    OP_IN,
    OP_INC,
    OP_JNZ,
    OP_JZ,
    OP_LEFT,
    OP_OUT,
    OP_RIGHT,
    UNMATCHED_CLOSE,
    UNMATCHED_OPEN,
    BFError,
    BFParseError,
    Instruction,
    Loader,
    Program,
    load,
)


def _assert_pairs_mutual(program: Program) -> None:
    for index, inst in enumerate(program):
        if inst.op == OP_JZ:
            partner = program[inst.target]
            assert partner.op == OP_JNZ
            assert partner.target == index
        elif inst.op == OP_JNZ:
            partner = program[inst.target]
            assert partner.op == OP_JZ
            assert partner.target == index
        else:
            assert inst.target is None


def test_decodes_every_command():
    program = load("><+-.,[]")
    assert [inst.op for inst in program] == [OP_RIGHT, OP_LEFT, OP_INC, OP_DEC, OP_OUT, OP_IN, OP_JZ, OP_JNZ]
    assert program[6].target == 7
    assert program[7].target == 6


@pytest.mark.parametrize(
    "source",
    ["[]", "[[]]", "+[->[-]<]", "[][][]", "[[[[]]][]]", ">+[<[>]+[-]]", ""],
)
def test_balanced_sources_get_mutual_targets(source):
    program = load(source)
    _assert_pairs_mutual(program)
    assert sum(inst.op == OP_JZ for inst in program) == source.count("[")


def test_nested_targets_point_at_matching_bracket():
    program = load("[[]]")
    assert program.instructions == (
        Instruction(OP_JZ, 3),
        Instruction(OP_JZ, 2),
        Instruction(OP_JNZ, 1),
        Instruction(OP_JNZ, 0),
    )


@pytest.mark.parametrize(
    "source, kind",
    [
        ("]", UNMATCHED_CLOSE),
        ("[", UNMATCHED_OPEN),
        ("[[]", UNMATCHED_OPEN),
        ("[]]", UNMATCHED_CLOSE),
        ("+++]---[", UNMATCHED_CLOSE),
    ],
)
def test_bracket_errors(source, kind):
    with pytest.raises(BFParseError) as info:
        load(source)
    assert info.value.kind == kind
    assert isinstance(info.value, BFError)


def test_unmatched_close_reports_its_location():
    with pytest.raises(BFParseError) as info:
        load("+\n  ]", "prog.bf")
    loc = info.value.location
    assert (loc.file, loc.line, loc.column, loc.char) == ("prog.bf", 2, 3, "]")
    assert "prog.bf:2:3" in info.value.message


def test_unmatched_open_reports_innermost_unclosed_bracket():
    with pytest.raises(BFParseError) as info:
        load("[ [ [] ")
    loc = info.value.location
    assert (loc.line, loc.column) == (1, 3)
    assert "2 bracket(s)" in info.value.message


def test_commentary_contributes_nothing():
    assert load("a+++b.") == load("+++.")
    assert load("Hello, world!\n  + + + \t.") == load(",+++.")


def test_load_is_pure():
    source = "++[>+<-]>."
    first = load(source)
    second = load(source)
    assert first == second
    assert first.instructions == second.instructions


def test_locations_follow_lines_and_columns():
    program = load("+\n>-", "x.bf")
    locs = [(loc.line, loc.column, loc.char) for loc in program.locations]
    assert locs == [(1, 1, "+"), (2, 1, ">"), (2, 2, "-")]
    assert str(program.locations[1]) == "x.bf:2:1"
    assert program.location_of(3) is None


def test_loader_class_tracks_position():
    loader = Loader("ab\ncd", "f.bf")
    program = loader.load()
    assert len(program) == 0
    assert (loader.line, loader.column) == (2, 3)
    assert program.filename == "f.bf"


def test_instruction_rendering_and_listing():
    assert str(Instruction(OP_INC)) == "+"
    assert str(Instruction(OP_JZ, 3)) == "[ (target: 3)"
    listing = load("+[-]").listing().splitlines()
    assert listing[0] == "0000: +    ; line 1, col 1"
    assert listing[1].startswith("0001: [ (target: 3)")
    assert listing[3].startswith("0003: ] (target: 1)")


def test_loader_can_load_twice():
    loader = Loader("+[\n-]", "twice.bf")
    first = loader.load()
    second = loader.load()
    assert first == second
    assert len(second) == 4
    assert second.locations == first.locations
