"""Tests for baseline capture and revert operations."""

import pytest

from mapstream import Baseline, MapStream


def test_baseline_is_a_detached_copy():
    initial = {"a": 1}
    baseline = Baseline(initial)

    initial["a"] = 2

    assert baseline.values == {"a": 1}


def test_baseline_cannot_be_written():
    baseline = Baseline({"a": 1})

    with pytest.raises(TypeError):
        baseline.values["a"] = 2


def test_revert_all_changes_covers_baseline_and_current_keys():
    baseline = Baseline({"a": 1, "c": 3})

    proposal = baseline.revert_all_changes({"a": 2, "b": 3})

    assert proposal == {"a": 1, "b": None, "c": 3}


def test_revert_all_restores_baseline_in_one_update(recorder):
    stream = MapStream.from_map({"a": 1})
    stream.set_all({"a": 2, "b": 3})
    stream.subscribe(recorder)

    stream.revert_all()

    assert stream.to_dict() == {"a": 1}
    assert len(recorder) == 1
    assert recorder.last.changed == {"a": 1, "b": None}
    assert recorder.last.before == {"a": 2, "b": 3}
    assert recorder.last.after == {"a": 1}


def test_revert_restores_baseline_value(recorder):
    stream = MapStream.from_map({"a": 1})
    stream["a"] = 5
    stream.subscribe(recorder)

    stream.revert("a")

    assert stream["a"] == 1
    assert recorder.last.changed == {"a": 1}


def test_revert_removes_key_missing_from_baseline(recorder):
    stream = MapStream.from_map({"a": 1})
    stream["b"] = 2
    stream.subscribe(recorder)

    stream.revert("b")

    assert "b" not in stream
    assert recorder.last.changed == {"b": None}


def test_revert_twice_is_idempotent(recorder):
    stream = MapStream.from_map({"a": 1})
    stream["a"] = 2
    stream.subscribe(recorder)

    stream.revert("a")
    stream.revert("a")

    assert len(recorder) == 1


def test_revert_on_empty_baseline_clears_map():
    stream = MapStream()
    stream.set_all({"x": 1, "y": 2})

    stream.revert_all()

    assert stream.is_empty


def test_revert_all_leaves_baseline_untouched():
    stream = MapStream.from_map({"a": 1})
    stream["a"] = 9

    stream.revert_all()
    stream["a"] = 10

    assert stream.baseline == {"a": 1}


def test_revert_all_on_type_safe_map_respects_pins():
    stream = MapStream.type_safe({"a": 1})
    stream["a"] = 4

    stream.revert_all()

    assert stream["a"] == 1
