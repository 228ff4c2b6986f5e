"""Tests for wheel_cascade.publish."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeBuildSystem, make_package

from wheel_cascade.build import PublishStatus
from wheel_cascade.errors import PublishFailure
from wheel_cascade.graph import build_graph
from wheel_cascade.models import Package
from wheel_cascade.publish import publish_deep


@pytest.fixture
def diamond() -> dict[str, Package]:
    """a ← b, a ← c, {b, c} ← d"""
    return {
        "a": make_package("a", changed=True),
        "b": make_package("b", deps=["a"]),
        "c": make_package("c", deps=["a"]),
        "d": make_package("d", deps=["b", "c"]),
    }


def run(
    packages: dict[str, Package],
    build: FakeBuildSystem,
    published: set[str] | None = None,
    closure: set[str] | None = None,
) -> set[str]:
    published = set() if published is None else published
    publish_deep(
        "a",
        build_graph(packages.values()),
        packages,
        build,
        Path("."),
        published,
        closure=set(packages) if closure is None else closure,
    )
    return published


class TestPublishDeep:
    def test_dependencies_before_dependants(self, diamond: dict[str, Package]) -> None:
        build = FakeBuildSystem()
        published = run(diamond, build)
        assert build.published == ["a", "b", "c", "d"]
        assert published == {"a", "b", "c", "d"}

    def test_twice_in_one_session_publishes_once(self, diamond: dict[str, Package]) -> None:
        build = FakeBuildSystem()
        published: set[str] = set()
        run(diamond, build, published)
        run(diamond, build, published)
        assert build.published == ["a", "b", "c", "d"]

    def test_already_uploaded_counts_as_success(self, diamond: dict[str, Package]) -> None:
        """The direct package already exists in the registry; dependants still go out."""
        build = FakeBuildSystem(results={"a": PublishStatus.ALREADY_PUBLISHED})
        published = run(diamond, build)
        assert published == {"a", "b", "c", "d"}
        assert build.published == ["a", "b", "c", "d"]

    def test_failure_raises_with_package_and_cause(self, diamond: dict[str, Package]) -> None:
        build = FakeBuildSystem(results={"c": PublishStatus.FAILED})
        published: set[str] = set()
        with pytest.raises(PublishFailure) as exc_info:
            run(diamond, build, published)
        assert exc_info.value.package == "c"
        assert "403 Forbidden" in str(exc_info.value)
        assert "d" not in build.published
        assert published == {"a", "b"}

    def test_dependants_outside_closure_are_visited(
        self, diamond: dict[str, Package]
    ) -> None:
        build = FakeBuildSystem()
        run(diamond, build, closure={"a"})
        assert sorted(build.published) == ["a", "b", "c", "d"]
        assert build.published.count("d") == 1

    def test_passes_dry_run(self, diamond: dict[str, Package]) -> None:
        build = FakeBuildSystem()
        publish_deep(
            "d",
            build_graph(diamond.values()),
            diamond,
            build,
            Path("."),
            set(),
            dry_run=True,
        )
        assert build.published == ["d"]
        assert build.dry_runs == [True]

    def test_reports_released_versions(
        self, diamond: dict[str, Package], capsys: pytest.CaptureFixture[str]
    ) -> None:
        build = FakeBuildSystem(results={"b": PublishStatus.ALREADY_PUBLISHED})
        publish_deep(
            "a",
            build_graph(diamond.values()),
            diamond,
            build,
            Path("."),
            set(),
            closure={"a", "b"},
            versions={"a": "1.1.0", "b": "1.0.1"},
        )
        out = capsys.readouterr().out
        assert "Published a 1.1.0" in out
        assert "b 1.0.1 already published" in out
        assert f"Published d {diamond['d'].version}" in out
