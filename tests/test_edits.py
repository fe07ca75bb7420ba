import pytest

from sceneforge.edits import (
    REJECT_EMPTY,
    REJECT_MALFORMED,
    REJECT_OVER_BUDGET,
    REJECT_OVERLAP,
    REJECT_TOO_MANY,
    REJECT_UNSORTED,
    apply_range_edits,
    compute_anchors,
    preimage_hash,
    validate_edit_list,
)


def _edit(sl, sc, el, ec, text=""):
    return {"start": {"line": sl, "character": sc}, "end": {"line": el, "character": ec}, "text": text}


def test_overlapping_edits_are_rejected():
    edits, rejection = validate_edit_list([_edit(0, 0, 0, 10, "a"), _edit(0, 5, 0, 12, "b")])
    assert edits == []
    assert rejection.reason == REJECT_OVERLAP
    assert "overlaps" in rejection.message


@pytest.mark.parametrize(
    ("edits", "reason"),
    [
        ([], REJECT_EMPTY),
        (None, REJECT_EMPTY),
        ([{"start": {"line": 0}}], REJECT_MALFORMED),
        ([_edit(2, 0, 1, 0)], REJECT_MALFORMED),
        ([_edit(3, 0, 3, 1), _edit(0, 0, 0, 1)], REJECT_UNSORTED),
        ([_edit(i, 0, i, 0, "x") for i in range(21)], REJECT_TOO_MANY),
        ([_edit(0, 0, 0, 0, "x" * 2001)], REJECT_OVER_BUDGET),
    ],
)
def test_rejection_reasons(edits, reason):
    _, rejection = validate_edit_list(edits)
    assert rejection is not None
    assert rejection.reason == reason


def test_adjacent_edits_are_accepted():
    edits, rejection = validate_edit_list([_edit(0, 0, 0, 5, "a"), _edit(0, 5, 0, 6, "b")])
    assert rejection is None
    assert len(edits) == 2


def test_apply_range_edits_zero_based_end_exclusive():
    text = "local x = 1\nprint(x)\n"
    edits, _ = validate_edit_list([_edit(0, 10, 0, 11, "2"), _edit(1, 0, 1, 0, "-- log\n")])
    assert apply_range_edits(text, edits) == "local x = 2\n-- log\nprint(x)\n"


def test_anchors_and_hash():
    text = "a\nb\nc"
    edits, _ = validate_edit_list([_edit(0, 0, 0, 1, "A"), _edit(2, 0, 2, 1, "C")])
    anchors = compute_anchors(text, edits)
    assert anchors.start_line_text == "a"
    assert anchors.end_line_text == "c"
    assert preimage_hash(text) == preimage_hash("a\nb\nc")
    assert preimage_hash(text) != preimage_hash("a\nb\nC")
