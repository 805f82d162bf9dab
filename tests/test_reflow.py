"""Tests for quote-aware reflow."""

from hanumail.email.reflow import quote_level, reflow_body, reflow_text


def test_quote_level():
    assert quote_level("> > nested") == (2, "nested")
    assert quote_level(">>tight") == (2, "tight")
    assert quote_level("plain  ") == (0, "plain")


def test_paragraphs_are_joined_and_wrapped():
    text = "one two\nthree four\n\nfive\n"
    assert reflow_text(text, width=40) == "one two three four\n\nfive\n"


def test_long_lines_wrap_within_width():
    text = " ".join(["alpha"] * 30)
    out = reflow_text(text, width=30)
    assert all(len(line) <= 30 for line in out.split("\n"))
    assert out.split() == text.split()
    assert not out.endswith("\n")


def test_quoted_lines_keep_their_prefix():
    text = "> " + " ".join(["quoted"] * 15) + "\n"
    out = reflow_text(text, width=40)
    lines = out.rstrip("\n").split("\n")
    assert len(lines) > 1
    assert all(line.startswith("> ") and len(line) <= 40 for line in lines)


def test_blank_line_inserted_between_quote_and_reply():
    assert reflow_text("> quoted\nreply\n") == "> quoted\n\nreply\n"
    assert reflow_text("reply\n> quoted") == "reply\n\n> quoted"


def test_nested_quote_levels_are_not_merged():
    assert reflow_text("> outer\n> > inner\n") == "> outer\n> > inner\n"


def test_newline_style_is_applied():
    assert reflow_text("a\r\nb\r\n", newline="\r\n") == "a b\r\n"


def test_signature_is_left_alone():
    body = "short\nlines\n-- \nJane Doe\n+1 555 0100\n"
    assert reflow_body(body) == "short lines\n-- \nJane Doe\n+1 555 0100\n"


def test_body_that_is_only_a_signature():
    body = "-- \nsig line one\nsig line two\n"
    assert reflow_body(body) == body
