import pytest
from ncflow.gcode.tokenizer import format_code, map_code_text, split_comment, tokenize, tokenize_program


@pytest.mark.parametrize("line", ["", "   ", "(only a comment)", "; semicolon comment", "%"])
def test_blank_and_comment_only_lines_are_skipped(line):
    assert tokenize(line) is None


def test_words_keep_order_and_original_spelling():
    token = tokenize("G01 X-10.50 Y.5 Z+3", 7)
    assert token.line_number == 7
    assert [w.letter for w in token.words] == ["G", "X", "Y", "Z"]
    assert [w.value for w in token.words] == [1.0, -10.5, 0.5, 3.0]
    assert token.render() == "G01 X-10.50 Y.5 Z+3"
    assert token.codes("G") == ("G1",)


def test_block_number_and_comments_are_stripped():
    token = tokenize("N120 G0 X5 (rapid over) ; trailing")
    assert token.block_number == 120
    assert token.comment == "rapid over trailing"
    assert token.axis_words == {"X": 5.0}


def test_first_occurrence_of_repeated_letter_wins():
    token = tokenize("G1 X1 X2 F100")
    assert token.value("X") == 1.0
    assert token.axis_words["X"] == 1.0


def test_multiple_g_codes_are_all_kept():
    token = tokenize("G90 G17 G80")
    assert token.codes("G") == ("G90", "G17", "G80")
    assert token.dominant_code() is None


@pytest.mark.parametrize(
    "line, expected",
    [
        ("G0 G1 X1", "G1"),
        ("G1 G2 X1 I1", "G2"),
        ("G81 G0 X1", "G0"),
        ("G12 G81 X1", "G81"),
        ("G4 G13.1 D10", "G13.1"),
        ("G4 P500", "G4"),
        ("G90 X1", None),
    ],
)
def test_dominant_code_priority(line, expected):
    assert tokenize(line).dominant_code() == expected


def test_unknown_letters_are_ignored():
    token = tokenize("O1000 G1 X1 E5")
    assert token.letters == frozenset({"G", "X"})


def test_shape_letters_are_recognized():
    token = tokenize("G13.2 D20 H5 A30 W2 L4")
    assert token.codes("G") == ("G13.2",)
    assert token.value("D") == 20.0
    assert token.value("A") == 30.0


def test_corner_word_is_attached_to_block():
    token = tokenize("G1 X10 Y5 ,R0.5")
    assert token.corner == ",R0.5"
    assert token.value("R") is None
    assert token.render() == "G1 X10 Y5 ,R0.5"


def test_without_drops_by_code_and_letter():
    token = tokenize("G90 G1 X1 F200")
    assert token.without("G90", "F").render() == "G1 X1"


@pytest.mark.parametrize("letter, value, expected", [("G", 0.0, "G0"), ("G", 13.1, "G13.1"), ("M", 30.0, "M30")])
def test_format_code(letter, value, expected):
    assert format_code(letter, value) == expected


def test_split_comment_and_map_code_text():
    code, comment = split_comment("G0 X1 (move) Y2")
    assert comment == "move"
    assert "(" not in code
    assert map_code_text("g0 (keep case)", str.upper) == "G0 (keep case)"


def test_tokenize_program_skips_non_blocks():
    text = "%\n(header)\nG0 X1\n\nG1 Y2\n"
    tokens = list(tokenize_program(text))
    assert [t.line_number for t in tokens] == [3, 5]
