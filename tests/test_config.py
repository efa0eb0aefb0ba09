from __future__ import annotations

from pathlib import Path

import pytest

from npm_lens.config import load_config
from npm_lens.errors import ConfigReadError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("NPM_LENS_REGISTRY_URL", "NPM_LENS_TOKEN", "NPM_LENS_PACKAGE_MANAGER", "NPM_LENS_EXCLUDE"):
        monkeypatch.delenv(key, raising=False)


def test_load_config_finds_default_toml_in_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    未显式指定 config_path 时，应在当前目录自动探测默认配置文件。
    """
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".npm-lens.toml").write_text(
        """
[npm_lens]
registry_url = "https://registry.test"
max_concurrency = 3
cache_ttl_s = 10
use_cache = false
refresh = true
package_manager = "pnpm"
exclude = ["a", "b"]
discovery_depth = 4

[[npm_lens.alternatives.request]]
name = "got"
version = "^14"
reason = "request is deprecated"
        """.strip()
        + "\n",
        encoding="utf-8",
    )

    cfg = load_config(None)
    assert cfg.registry.registry_url == "https://registry.test"
    assert cfg.max_concurrency == 3
    assert cfg.cache_ttl_s == 10
    assert cfg.use_cache is False
    assert cfg.refresh is True
    assert cfg.package_manager == "pnpm"
    assert cfg.exclude == ("a", "b")
    assert cfg.discovery_depth == 4
    [alt] = cfg.alternatives.fetch_package_alternatives("request")
    assert (alt.name, alt.version, alt.reason, alt.source) == ("got", "^14", "request is deprecated", "config")


def test_load_config_default_yaml_when_toml_missing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "npm-lens.yaml").write_text(
        """
npm_lens:
  registry_url: "https://yaml.test"
  retries: 5
  timeout_s: 1.5
        """.strip()
        + "\n",
        encoding="utf-8",
    )

    cfg = load_config(None)
    assert cfg.registry.registry_url == "https://yaml.test"
    assert cfg.registry.retries == 5
    assert cfg.registry.timeout_s == 1.5


def test_load_config_yaml_non_dict_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "npm-lens.yaml").write_text("- 1\n- 2\n", encoding="utf-8")
    cfg = load_config(None)
    assert cfg.registry.registry_url == "https://registry.npmjs.org"


def test_load_config_env_overrides_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    环境变量的配置应覆盖配置文件中的同名字段。
    """
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".npm-lens.toml").write_text(
        '[npm_lens]\nregistry_url = "https://file.test"\ntoken = "file-token"\nexclude = ["x"]\n',
        encoding="utf-8",
    )
    monkeypatch.setenv("NPM_LENS_REGISTRY_URL", "https://env.test")
    monkeypatch.setenv("NPM_LENS_TOKEN", "env-token")
    monkeypatch.setenv("NPM_LENS_EXCLUDE", "a, b")
    monkeypatch.setenv("NPM_LENS_PACKAGE_MANAGER", "yarn")

    cfg = load_config(None)
    assert cfg.registry.registry_url == "https://env.test"
    assert cfg.registry.token == "env-token"
    assert cfg.exclude == ("a", "b")
    assert cfg.package_manager == "yarn"


def test_invalid_values_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".npm-lens.toml").write_text(
        '[npm_lens]\nmax_concurrency = "lots"\ntimeout_s = "slow"\npackage_manager = "bun"\nalternatives = 3\n',
        encoding="utf-8",
    )
    cfg = load_config(None)
    assert cfg.max_concurrency == 20
    assert cfg.registry.timeout_s == 10.0
    assert cfg.package_manager == "npm"
    assert cfg.alternatives.fetch_package_alternatives("anything") == []


def test_explicit_broken_config_raises(tmp_path: Path) -> None:
    path = tmp_path / "broken.toml"
    path.write_text("[npm_lens\n", encoding="utf-8")
    with pytest.raises(ConfigReadError):
        load_config(str(path))


def test_explicit_broken_yaml_config_raises(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("npm_lens: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigReadError, match="cannot parse"):
        load_config(str(path))
