# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pageforge.config — defaults, YAML file, environment overrides."""

from __future__ import annotations

import logging

import pytest

from pageforge.config import MAX_DEPTH_LIMIT, ImportSettings, load_settings, settings_from_mapping
from pageforge.errors import ConfigError


class TestDefaults:
    def test_defaults(self):
        s = ImportSettings()
        assert s.create_styles is True
        assert s.create_components is True
        assert s.include_hidden is False
        assert s.max_depth == 50
        assert s.component_threshold == 3
        assert s.yield_every == 50
        assert s.framer_aware is True

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_depth": -1}, {"max_depth": MAX_DEPTH_LIMIT + 1}, {"component_threshold": 1}, {"yield_every": 0}],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ConfigError):
            ImportSettings(**kwargs)

    def test_keyword_only(self):
        with pytest.raises(TypeError):
            ImportSettings(True)

    def test_depth_limit_accepted(self):
        assert ImportSettings(max_depth=MAX_DEPTH_LIMIT).max_depth == MAX_DEPTH_LIMIT

    def test_deep_env_override_rejected(self):
        with pytest.raises(ConfigError, match="max_depth"):
            load_settings(env={"PAGEFORGE_MAX_DEPTH": "5000"})


class TestMapping:
    def test_camel_case_keys(self):
        s = settings_from_mapping({"includeHiddenElements": True, "maxDepth": 10})
        assert s.include_hidden is True
        assert s.max_depth == 10

    def test_snake_case_keys(self):
        s = settings_from_mapping({"create_components": False})
        assert s.create_components is False

    def test_overlay_keeps_base(self):
        base = ImportSettings(max_depth=5)
        s = settings_from_mapping({"createStyles": False}, base)
        assert (s.max_depth, s.create_styles) == (5, False)

    def test_unknown_key_warned(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pageforge.config"):
            s = settings_from_mapping({"viewport": "mobile"})
        assert s == ImportSettings()
        assert "viewport" in caplog.text

    @pytest.mark.parametrize("value", ["yes", "1", "TRUE", "on"])
    def test_truthy_strings(self, value):
        assert settings_from_mapping({"include_hidden": value}).include_hidden is True

    def test_bad_boolean(self):
        with pytest.raises(ConfigError, match="include_hidden"):
            settings_from_mapping({"include_hidden": "maybe"})

    def test_bad_integer(self):
        with pytest.raises(ConfigError, match="max_depth"):
            settings_from_mapping({"maxDepth": "deep"})

    def test_boolean_is_not_an_integer(self):
        with pytest.raises(ConfigError):
            settings_from_mapping({"maxDepth": True})

    @pytest.mark.parametrize("key", ["framerAwareMode", "framerAware", "framer_aware"])
    def test_framer_aware_keys(self, key):
        assert settings_from_mapping({key: False}).framer_aware is False

    def test_framer_aware_env(self):
        assert load_settings(env={"PAGEFORGE_FRAMER_AWARE": "off"}).framer_aware is False


class TestLoadSettings:
    def test_no_sources(self):
        assert load_settings(env={}) == ImportSettings()

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("maxDepth: 12\ncreateComponents: false\n", encoding="utf-8")
        s = load_settings(path, env={})
        assert s.max_depth == 12
        assert s.create_components is False

    def test_empty_yaml_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path, env={}) == ImportSettings()

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("maxDepth: 12\n", encoding="utf-8")
        s = load_settings(path, env={"PAGEFORGE_MAX_DEPTH": "3", "PAGEFORGE_INCLUDE_HIDDEN": "true"})
        assert s.max_depth == 3
        assert s.include_hidden is True

    def test_blank_env_ignored(self):
        assert load_settings(env={"PAGEFORGE_MAX_DEPTH": "  "}) == ImportSettings()

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("PAGEFORGE_COMPONENT_THRESHOLD", "4")
        assert load_settings().component_threshold == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read"):
            load_settings(tmp_path / "nope.yaml", env={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("maxDepth: [1,\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path, env={})

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path, env={})
