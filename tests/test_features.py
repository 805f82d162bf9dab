"""Tests for completion, Message-ID navigation and formatting over the protocol."""

from .conftest import SIMPLE_MESSAGE

A = "file:///mail/a.eml"
B = "file:///mail/b.eml"
C = "file:///mail/c.eml"

REPLY = "From: bob@example.org\r\nIn-Reply-To: <lunch-1@example.com>\r\nReferences: <lunch-1@example.com>\r\n\r\nSure\r\n"


def _at(uri, line, character, **extra):
    return {"textDocument": {"uri": uri}, "position": {"line": line, "character": character}, **extra}


def test_header_name_completion_on_partial_line(ready):
    ready.open(A, "From: a@b.c\r\nCont\r\n\r\nbody")
    request_id = ready.request("textDocument/completion", _at(A, 1, 4))
    items = ready.result(request_id)["items"]
    by_label = {item["label"]: item for item in items}
    assert "Content-Type" in by_label
    assert by_label["Content-Type"]["insertText"] == "Content-Type: "
    assert by_label["Subject"]["kind"] == 5


def test_header_name_completion_before_existing_colon(ready):
    ready.open(A, "Subj: x\n\n")
    request_id = ready.request("textDocument/completion", _at(A, 0, 2))
    items = ready.result(request_id)["items"]
    assert {item["insertText"] for item in items if item["label"] == "Subject"} == {"Subject"}


def test_value_completion_for_enumerated_header(ready):
    ready.open(A, "From: a@b.c\r\nContent-Type:\r\n\r\n")
    request_id = ready.request("textDocument/completion", _at(A, 1, 13))
    items = ready.result(request_id)["items"]
    assert "text/plain" in [item["label"] for item in items]
    assert all(item["insertText"].startswith(" ") for item in items)


def test_value_completion_on_continuation_line(ready):
    ready.open(A, "Content-Transfer-Encoding:\r\n \r\n\r\n")
    request_id = ready.request("textDocument/completion", _at(A, 1, 1))
    labels = [item["label"] for item in ready.result(request_id)["items"]]
    assert "base64" in labels


def test_no_completion_in_body_or_free_text_header(ready):
    ready.open(A, SIMPLE_MESSAGE)
    body_id = ready.request("textDocument/completion", _at(A, 6, 3))
    assert ready.result(body_id)["items"] == []
    subject_id = ready.request("textDocument/completion", _at(A, 3, 12))
    assert ready.result(subject_id)["items"] == []


def test_definition_resolves_in_reply_to(ready):
    ready.open(A, SIMPLE_MESSAGE)
    ready.open(B, REPLY)
    request_id = ready.request("textDocument/definition", _at(B, 1, 16))
    ready.settle()
    (location,) = ready.result(request_id)
    assert location["uri"] == A
    assert location["range"] == {"start": {"line": 4, "character": 12}, "end": {"line": 4, "character": 33}}


def test_definition_without_match_is_empty(ready):
    ready.open(B, REPLY)
    request_id = ready.request("textDocument/definition", _at(B, 1, 16))
    ready.settle()
    assert ready.result(request_id) == []


def test_references_to_message_id(ready):
    ready.open(A, SIMPLE_MESSAGE)
    ready.open(B, REPLY)
    ready.open(C, "From: c@x.org\r\nReferences: <other@x> <lunch-1@example.com>\r\n\r\n")
    request_id = ready.request("textDocument/references", _at(A, 4, 15, context={"includeDeclaration": False}))
    ready.settle()
    locations = ready.result(request_id)
    assert sorted(loc["uri"] for loc in locations) == [B, B, C]

    with_decl = ready.request("textDocument/references", _at(A, 4, 15, context={"includeDeclaration": True}))
    ready.settle()
    assert ready.result(with_decl)[0]["uri"] == A


def test_formatting_reflows_body_only(ready):
    body = " ".join(["word"] * 40)
    text = "From: a@b.c\n" + "Subject: " + "s" * 100 + "\n\n" + body + "\n"
    ready.open(A, text)
    request_id = ready.request("textDocument/formatting", {"textDocument": {"uri": A}, "options": {"tabSize": 4, "insertSpaces": True}})
    ready.settle()
    (edit,) = ready.result(request_id)
    assert edit["range"]["start"] == {"line": 3, "character": 0}
    assert all(len(line) <= 78 for line in edit["newText"].splitlines())
    assert edit["newText"].split() == body.split()


def test_formatting_unchanged_body_gives_no_edits(ready):
    ready.open(A, SIMPLE_MESSAGE)
    request_id = ready.request("textDocument/formatting", {"textDocument": {"uri": A}, "options": {"tabSize": 4, "insertSpaces": True}})
    ready.settle()
    assert ready.result(request_id) == []


def test_range_formatting_respects_quote_levels(ready):
    quoted = "> " + " ".join(["quoted"] * 20)
    text = "From: a@b.c\n\n" + quoted + "\nreply text\n"
    ready.open(A, text)
    params = {
        "textDocument": {"uri": A},
        "range": {"start": {"line": 2, "character": 0}, "end": {"line": 3, "character": 10}},
        "options": {"tabSize": 4, "insertSpaces": True},
    }
    request_id = ready.request("textDocument/rangeFormatting", params)
    ready.settle()
    (edit,) = ready.result(request_id)
    lines = edit["newText"].split("\n")
    assert all(line.startswith("> ") for line in lines[:-2])
    assert lines[-2:] == ["", "reply text"]


def test_range_formatting_covers_whole_lines(ready):
    body = " ".join(["word"] * 30)
    ready.open(A, "From: a@b.c\n\n" + body + "\n")
    params = {
        "textDocument": {"uri": A},
        "range": {"start": {"line": 2, "character": 10}, "end": {"line": 2, "character": 20}},
        "options": {"tabSize": 4, "insertSpaces": True},
    }
    request_id = ready.request("textDocument/rangeFormatting", params)
    ready.settle()
    (edit,) = ready.result(request_id)
    assert edit["range"]["start"] == {"line": 2, "character": 0}
    assert edit["range"]["end"] == {"line": 2, "character": len(body)}
    assert edit["newText"].split() == body.split()
