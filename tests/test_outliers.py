from __future__ import annotations

import random

import pytest

from npm_lens.engines import project_constraints, resolve_engine_range
from npm_lens.models import DependencyRecord, ResolvedRange
from npm_lens.outliers import SOLE_CONSTRAINT_IMPACT, detect_outliers

WORKED_EXAMPLE_TABLE = ["16.0.0", "17.0.0", "18.0.0", "18.9.9", "18.18.0", "19.0.0", "20.0.0", "22.0.0"]
_SAMPLE_VERSIONS = ["16.0.0", "16.20.2", "17.3.0", "18.0.0", "18.3.5", "18.9.9", "18.19.1", "20", "20.11.0", "21.2.7", "22.0.0"]


def _dep(name: str, constraint: str | None) -> DependencyRecord:
    return DependencyRecord(name=name, installed_version="1.0.0", engine_constraint=constraint, path=f"node_modules/{name}")


def test_two_narrowing_dependencies_are_flagged() -> None:
    """
    一个依赖收紧上界、一个依赖抬高下界时应各自被标记，不影响范围的依赖不被标记。
    """
    root = ">=16.0.0 <=22.0.0"
    deps = [_dep("caps-max", "<=18.9.9"), _dep("raises-min", ">=18.0.0"), _dep("harmless", ">=16.0.0 <=20.0.0")]
    project_range = resolve_engine_range(project_constraints(root, deps), candidates=WORKED_EXAMPLE_TABLE)
    assert (project_range.min, project_range.max) == ("18.0.0", "18.9.9")

    outliers = detect_outliers(deps, project_range, root, candidates=WORKED_EXAMPLE_TABLE)
    by_name = {o.package_name: o for o in outliers}
    assert set(by_name) == {"caps-max", "raises-min"}
    assert "Allows newer Node.js" in by_name["caps-max"].impact
    assert by_name["caps-max"].range_without.max == "20.0.0"
    assert "Allows older Node.js" in by_name["raises-min"].impact
    assert by_name["raises-min"].range_without.min == "16.0.0"


def test_sole_constraint_is_flagged() -> None:
    deps = [_dep("only", ">=18"), _dep("free", None)]
    project_range = resolve_engine_range(project_constraints(None, deps))
    outliers = detect_outliers(deps, project_range, None)
    assert len(outliers) == 1
    assert outliers[0].package_name == "only"
    assert outliers[0].impact == SOLE_CONSTRAINT_IMPACT
    assert outliers[0].range_without == ResolvedRange()


def test_no_outliers_for_empty_range_or_unconstrained_dependencies() -> None:
    deps = [_dep("a", "<16.0.0"), _dep("b", ">18.0.0")]
    assert detect_outliers(deps, ResolvedRange(), None) == []

    free = [_dep("x", None), _dep("y", None)]
    rng = resolve_engine_range([">=18"])
    assert detect_outliers(free, rng, ">=18") == []


def test_same_name_at_two_paths_is_handled_per_record() -> None:
    """
    同名依赖安装在不同路径时按记录逐个排除，而不是按名称一起排除。
    """
    deps = [
        _dep("dup", ">=20.0.0"),
        DependencyRecord(name="dup", installed_version="0.5.0", engine_constraint=">=18.0.0", path="node_modules/a/node_modules/dup"),
    ]
    project_range = resolve_engine_range(project_constraints(None, deps))
    outliers = detect_outliers(deps, project_range, None)
    assert [(o.package_name, o.package_version) for o in outliers] == [("dup", "1.0.0")]


def test_constraint_between_table_versions_is_not_flagged() -> None:
    """
    收紧后的上界落在两个候选版本之间时范围不变，不应被标记。
    """
    root = ">=16.0.0 <18.3.5"
    deps = [_dep("tight", "<=18.3.3")]
    project_range = resolve_engine_range(project_constraints(root, deps))
    assert project_range.max == "18.3.0"
    assert detect_outliers(deps, project_range, root) == []


def _random_constraint(rng: random.Random) -> str | None:
    if rng.random() < 0.2:
        return None

    def comparator_set() -> str:
        ops = [rng.choice([">=", ">", "<=", "<", "^", "~", ""]) for _ in range(rng.randint(1, 2))]
        return " ".join(f"{op}{rng.choice(_SAMPLE_VERSIONS)}" for op in ops)

    return " || ".join(comparator_set() for _ in range(rng.randint(1, 2)))


@pytest.mark.parametrize("seed", range(40))
def test_outliers_match_recomputation_without_each_dependency(seed: int) -> None:
    """
    依赖被标记当且仅当去掉它之后重新求出的 (min, max) 与项目范围不同。
    """
    rng = random.Random(seed)
    root = _random_constraint(rng)
    deps = [_dep(f"dep-{i}", _random_constraint(rng)) for i in range(rng.randint(1, 5))]
    project_range = resolve_engine_range(project_constraints(root, deps))

    flagged = {o.package_name for o in detect_outliers(deps, project_range, root)}
    if project_range.is_empty:
        assert flagged == set()
        return

    expected = set()
    for index, dep in enumerate(deps):
        if dep.engine_constraint is None:
            continue
        others = deps[:index] + deps[index + 1 :]
        without = resolve_engine_range(project_constraints(root, others))
        if (without.min, without.max) != (project_range.min, project_range.max):
            expected.add(dep.name)
    assert flagged == expected
