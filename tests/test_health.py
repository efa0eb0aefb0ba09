from __future__ import annotations

from datetime import datetime, timedelta, timezone

from npm_lens.health import classify_dependency, compute_available_updates
from npm_lens.models import AlternativeSuggestion, DependencyRecord, HealthTier, RegistryInfo, ResolvedRange

NODE_18_20 = ResolvedRange(min="18.0.0", max="20.11.0", expression=">=18.0.0 <=20.11.0")
T0 = datetime(2023, 1, 1, tzinfo=timezone.utc)


def _dep(version: str = "1.0.0", constraint: str | None = None, **kwargs) -> DependencyRecord:
    return DependencyRecord(
        name=kwargs.pop("name", "lib"),
        installed_version=version,
        engine_constraint=constraint,
        path="node_modules/lib",
        **kwargs,
    )


def _info(versions: dict[str, str | None], latest: str | None, times: dict[str, datetime] | None = None) -> RegistryInfo:
    return RegistryInfo(name="lib", versions=versions, latest=latest, release_times=times or {})


def test_major_gap_is_red() -> None:
    """
    已安装 1.0.0、最新 2.0.0 应为 Red，且可用更新只包含 2.0.0。
    """
    res = classify_dependency(_dep(), NODE_18_20, _info({"1.0.0": None, "2.0.0": None}, "2.0.0"))
    assert res.health == HealthTier.RED
    assert res.available_updates == ["2.0.0"]
    assert res.latest_version == "2.0.0"
    assert res.path == "node_modules/lib"


def test_tiers_by_diff_level() -> None:
    versions = {"1.0.0": None, "1.0.1": None, "1.1.0": None}
    assert classify_dependency(_dep("1.1.0"), NODE_18_20, _info(versions, "1.1.0")).health == HealthTier.GREEN
    assert classify_dependency(_dep("1.0.1"), NODE_18_20, _info(versions, "1.1.0")).health == HealthTier.ORANGE
    assert classify_dependency(_dep("1.0.0"), NODE_18_20, _info(versions, "1.0.1")).health == HealthTier.YELLOW


def test_unparseable_installed_version_is_red() -> None:
    res = classify_dependency(_dep("github:foo/bar"), NODE_18_20, _info({"1.0.0": None}, "1.0.0"))
    assert res.health == HealthTier.RED
    assert res.available_updates == []


def test_recency_escalates_one_tier_after_six_months() -> None:
    """
    最新版本比已安装版本晚 6 个月以上发布时提升一级，12 个月以上直接 Red。
    """
    versions = {"1.0.0": None, "1.0.1": None}
    half_year = _info(versions, "1.0.1", {"1.0.0": T0, "1.0.1": T0 + timedelta(days=200)})
    res = classify_dependency(_dep(), NODE_18_20, half_year)
    assert res.health == HealthTier.ORANGE
    assert res.release_date_installed == T0.isoformat()

    year = _info(versions, "1.0.1", {"1.0.0": T0, "1.0.1": T0 + timedelta(days=400)})
    assert classify_dependency(_dep(), NODE_18_20, year).health == HealthTier.RED

    recent = _info(versions, "1.0.1", {"1.0.0": T0, "1.0.1": T0 + timedelta(days=30)})
    assert classify_dependency(_dep(), NODE_18_20, recent).health == HealthTier.YELLOW


def test_engine_mismatch_forces_at_least_orange() -> None:
    res = classify_dependency(_dep("1.0.0", "<16"), NODE_18_20, _info({"1.0.0": "<16"}, "1.0.0"))
    assert res.health == HealthTier.ORANGE
    assert res.node_compatibility_note is not None
    assert "<16" in res.node_compatibility_note


def test_unknown_for_root_and_registry_errors() -> None:
    root = classify_dependency(
        DependencyRecord(name="app", installed_version="1.0.0", is_root=True),
        NODE_18_20,
        _info({"1.0.0": None}, "1.0.0"),
    )
    assert root.health == HealthTier.UNKNOWN
    assert root.available_updates == []

    missing = classify_dependency(_dep(), NODE_18_20, RegistryInfo(name="lib", error="package not found"))
    assert missing.health == HealthTier.UNKNOWN
    assert "not found" in (missing.node_compatibility_note or "")

    empty = classify_dependency(_dep(), NODE_18_20, _info({}, None))
    assert empty.health == HealthTier.UNKNOWN
    assert "No versions" in (empty.node_compatibility_note or "")


def test_available_updates_filter_by_engine_and_inherit_installed_constraint() -> None:
    """
    候选版本声明了 engines.node 时以其为准，未声明时沿用已安装版本的约束。
    """
    info = _info(
        {"1.0.0": ">=18", "1.1.0": ">=22", "1.2.0": None, "2.0.0": "^20", "0.9.0": None},
        "2.0.0",
    )
    assert compute_available_updates(_dep("1.0.0", ">=18"), NODE_18_20, info) == ["2.0.0", "1.2.0"]
    assert compute_available_updates(_dep("1.0.0", "<16"), NODE_18_20, info) == ["2.0.0"]


def test_empty_project_range_yields_no_updates() -> None:
    info = _info({"1.0.0": None, "2.0.0": "<10", "3.0.0": None}, "3.0.0")
    assert compute_available_updates(_dep("1.0.0", ">=18"), ResolvedRange(), info) == []
    res = classify_dependency(_dep("1.0.0"), ResolvedRange(), info)
    assert res.available_updates == []
    assert res.health == HealthTier.RED


def test_alternatives_pass_through_and_function_is_pure() -> None:
    alts = [AlternativeSuggestion(name="other-lib", reason="maintained")]
    dep = _dep()
    info = _info({"1.0.0": None, "2.0.0": None}, "2.0.0")
    first = classify_dependency(dep, NODE_18_20, info, alts)
    second = classify_dependency(dep, NODE_18_20, info, alts)
    assert first == second
    assert first.alternatives == alts
