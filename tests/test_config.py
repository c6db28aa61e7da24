"""Tests for slowlog/config.py"""

from argparse import Namespace

import pytest

from slowlog.config import Config, load_config, load_yaml_config


def _args(**overrides) -> Namespace:
    values = dict(
        infile=None, filters=None, order=None, limit=None, aggregate=False,
        normalize=False, output=None, workers=None, dialect=None, config=None,
    )
    values.update(overrides)
    return Namespace(**values)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SLOWLOG_LIMIT", "SLOWLOG_WORKERS", "SLOWLOG_DIALECT"):
        monkeypatch.delenv(name, raising=False)


class TestLoadYaml:
    def test_no_path(self):
        assert load_yaml_config(None) == {}

    def test_missing_file(self, tmp_path):
        assert load_yaml_config(str(tmp_path / "nope.yml")) == {}

    def test_reads_mapping(self, tmp_path):
        path = tmp_path / "slowlog.yml"
        path.write_text("order: count\nlimit: 3\nfilters:\n  - user!=root\n")
        assert load_yaml_config(str(path)) == {"order": "count", "limit": 3, "filters": ["user!=root"]}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_yaml_config(str(path)) == {}

    def test_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_config(str(path))


class TestLoadConfig:
    def test_defaults(self):
        assert load_config(_args(), {}) == Config()

    def test_yaml_values(self):
        config = load_config(_args(), {"order": "max_time", "limit": 3, "aggregate": True, "workers": 2})
        assert config.order == "max_time"
        assert config.limit == 3
        assert config.aggregate is True
        assert config.workers == 2

    def test_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("SLOWLOG_LIMIT", "7")
        assert load_config(_args(), {"limit": 3}).limit == 7

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("SLOWLOG_LIMIT", "7")
        assert load_config(_args(limit=2), {"limit": 3}).limit == 2

    def test_filters_concatenated(self):
        config = load_config(_args(filters=["query_time>100"]), {"filters": ["user=app"]})
        assert config.filters == ["user=app", "query_time>100"]

    def test_invalid_order(self):
        with pytest.raises(ValueError):
            load_config(_args(), {"order": "fastest"})

    @pytest.mark.parametrize("value", ["false", "yes", 1])
    def test_non_boolean_flag_rejected(self, value):
        with pytest.raises(ValueError, match="aggregate"):
            load_config(_args(), {"aggregate": value})

    def test_yaml_false_flag(self, tmp_path):
        path = tmp_path / "slowlog.yml"
        path.write_text("aggregate: false\nnormalize:\n")
        config = load_config(_args(), load_yaml_config(str(path)))
        assert config.aggregate is False
        assert config.normalize is False

    def test_cli_flag_beats_yaml_false(self):
        assert load_config(_args(normalize=True), {"normalize": False}).normalize is True

    def test_invalid_workers(self):
        with pytest.raises(ValueError):
            load_config(_args(workers=0), {})
