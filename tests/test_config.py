# tests/test_config.py
"""
Tests for AnalysisConfig defaults, environment overrides and validation.
"""

import pytest

from cfgprof.config import AnalysisConfig


class TestDefaults:

    def test_defaults(self):
        config = AnalysisConfig()
        assert config.entry_procedure == "main"
        assert config.max_passes is None
        assert config.warn_unreachable is True
        assert config.strict is False
        assert config.validate() == []

    def test_frozen(self):
        with pytest.raises(AttributeError):
            AnalysisConfig().strict = True


class TestFromEnv:

    def test_empty_environment(self):
        assert AnalysisConfig.from_env({}) == AnalysisConfig()

    def test_all_variables(self):
        config = AnalysisConfig.from_env({
            "CFGPROF_ENTRY_PROCEDURE": " start ",
            "CFGPROF_MAX_PASSES": "10",
            "CFGPROF_WARN_UNREACHABLE": "off",
            "CFGPROF_STRICT": "Yes",
        })
        assert config == AnalysisConfig(
            entry_procedure="start", max_passes=10, warn_unreachable=False, strict=True,
        )

    @pytest.mark.parametrize("raw", ["", "none", "None"])
    def test_unlimited_passes(self, raw):
        assert AnalysisConfig.from_env({"CFGPROF_MAX_PASSES": raw}).max_passes is None

    def test_bad_integer(self):
        with pytest.raises(ValueError, match="CFGPROF_MAX_PASSES"):
            AnalysisConfig.from_env({"CFGPROF_MAX_PASSES": "many"})

    def test_bad_boolean(self):
        with pytest.raises(ValueError, match="CFGPROF_STRICT"):
            AnalysisConfig.from_env({"CFGPROF_STRICT": "maybe"})

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("CFGPROF_STRICT", "1")
        assert AnalysisConfig.from_env().strict is True


class TestOverride:

    def test_none_values_ignored(self):
        base = AnalysisConfig(max_passes=5)
        assert base.override(max_passes=None, strict=None) is base

    def test_values_applied(self):
        config = AnalysisConfig().override(max_passes=3, strict=True)
        assert config.max_passes == 3
        assert config.strict is True


class TestValidate:

    def test_problems_listed(self):
        problems = AnalysisConfig(entry_procedure="", max_passes=0).validate()
        assert len(problems) == 2
        assert any("entry_procedure" in p for p in problems)
        assert any("max_passes" in p for p in problems)
