from visionbatch.services.text_service import normalize


def test_hyphenated_word_is_joined():
    assert normalize("exam-\nple text") == "example text"


def test_paragraph_break_survives():
    assert normalize("Line one\n\nLine two") == "Line one\n\nLine two"


def test_multiple_spaces_collapse():
    assert normalize("a   b") == "a b"


def test_tabs_are_untouched():
    assert normalize("a\tb") == "a\tb"


def test_single_line_breaks_become_spaces():
    assert normalize("wrapped\nline of\ntext") == "wrapped line of text"


def test_crlf_and_cr_are_line_breaks():
    assert normalize("one\r\ntwo\rthree") == "one two three"
    assert normalize("para\r\n\r\nnext") == "para\n\nnext"


def test_hyphen_join_before_line_collapse():
    # CRLF is normalized first so the hyphen still touches the break
    assert normalize("infor-\r\nmation") == "information"


def test_trims_outer_whitespace():
    assert normalize("  \n hello \n  ") == "hello"


def test_empty_input():
    assert normalize("") == ""
    assert normalize(None) == ""
