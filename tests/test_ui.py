"""Tests for wheel_cascade.ui."""

from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import click
from conftest import make_package

from wheel_cascade.ui import ClickOperator, _parse_indexes, package_label, update_choices
from wheel_cascade.versions import Update


def test_parse_indexes() -> None:
    assert _parse_indexes("1 3", 3) == [0, 2]
    assert _parse_indexes("2,2, 1", 3) == [1, 0]
    assert _parse_indexes("4", 3) is None
    assert _parse_indexes("x", 3) is None


def test_update_choices() -> None:
    choices = [click.unstyle(c) for c in update_choices("1.2.3")]
    assert choices == [
        "docs v1.2.3",
        "chore v1.2.3",
        "patch v1.2.3 -> v1.2.4",
        "minor v1.2.3 -> v1.3.0",
        "major v1.2.3 -> v2.0.0",
    ]


def test_package_label_lists_changed_dependencies() -> None:
    pkg = make_package("b", deps=["a", "x"], changed=True, changed_deps=["a"])
    assert click.unstyle(package_label(pkg)) == "b (changed: a)"
    assert click.unstyle(package_label(make_package("c"))) == "c"


class TestClickOperator:
    @patch("wheel_cascade.ui.click.prompt")
    def test_select_package_retries_invalid_input(self, mock_prompt: MagicMock) -> None:
        mock_prompt.side_effect = ["9", "1 2", "2"]
        candidates = [make_package("a", changed=True), make_package("b", changed=True)]

        assert ClickOperator().select_package(candidates) is candidates[1]
        assert mock_prompt.call_count == 3

    @patch("wheel_cascade.ui.click.prompt")
    def test_empty_answer_selects_nothing(self, mock_prompt: MagicMock) -> None:
        mock_prompt.return_value = ""
        assert ClickOperator().select_update(make_package("a")) is None

    @patch("wheel_cascade.ui.click.prompt")
    def test_select_update(self, mock_prompt: MagicMock) -> None:
        mock_prompt.return_value = "4"
        assert ClickOperator().select_update(make_package("a")) is Update.MINOR

    @patch("wheel_cascade.ui.click.prompt")
    def test_select_subset(self, mock_prompt: MagicMock) -> None:
        candidates = [make_package("a"), make_package("b"), make_package("c")]
        operator = ClickOperator()

        mock_prompt.return_value = "all"
        assert operator.select_subset("Pick", candidates) == candidates
        mock_prompt.return_value = "3 1"
        assert operator.select_subset("Pick", candidates) == [candidates[2], candidates[0]]
        mock_prompt.return_value = ""
        assert operator.select_subset("Pick", candidates, default=False) == []
        assert mock_prompt.call_args.kwargs["default"] == ""

    def test_select_subset_without_candidates(self) -> None:
        assert ClickOperator().select_subset("Pick", []) == []

    @patch("wheel_cascade.ui.click.get_text_stream")
    def test_prompt_text_ends_on_two_empty_lines(self, mock_stream: MagicMock) -> None:
        mock_stream.return_value = io.StringIO("line one\n\nline two  \n\n\nignored\n")
        assert ClickOperator().prompt_text("Commit message") == "line one\n\nline two"
