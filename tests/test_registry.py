"""Tests for the registry.py module."""

from pathlib import Path

import pytest

from envswitch.config import CcEnvironment, Configuration, EnvironmentKind, JavaEnvironment, LlmEnvironment
from envswitch.errors import DuplicateName, EnvironmentNotFound
from envswitch.registry import EnvironmentRegistry
from envswitch.scanner import ScanCandidate, canonicalize


def _candidate(path, version="17.0.2", vendor="Eclipse Adoptium"):
    return ScanCandidate(path=Path(path), canonical_path=canonicalize(path), version=version, vendor=vendor)


@pytest.fixture()
def registry():
    config = Configuration(
        java_environments=[JavaEnvironment(name="jdk-17", java_home="/usr/lib/jvm/java-17-openjdk")],
        cc_environments=[CcEnvironment(name="glmcc", base_url="https://open.bigmodel.cn/api/anthropic")],
    )
    return EnvironmentRegistry(config)


class TestEnvironmentSet:
    def test_get_existing(self, registry):
        assert registry.get(EnvironmentKind.JAVA, "jdk-17").java_home == "/usr/lib/jvm/java-17-openjdk"

    def test_get_missing_suggests_similar(self, registry):
        with pytest.raises(EnvironmentNotFound) as exc_info:
            registry.get(EnvironmentKind.JAVA, "jdk")
        assert exc_info.value.similar == ["jdk-17"]
        assert "did you mean: jdk-17?" in str(exc_info.value)

    def test_get_missing_without_similar_points_to_list(self, registry):
        with pytest.raises(EnvironmentNotFound) as exc_info:
            registry.get(EnvironmentKind.LLM, "gpt")
        assert "envswitch llm list" in str(exc_info.value)

    def test_names_are_case_sensitive(self, registry):
        registry.add(JavaEnvironment(name="JDK-17", java_home="/other"))
        assert registry.environments(EnvironmentKind.JAVA).names() == ["jdk-17", "JDK-17"]

    def test_add_duplicate_raises(self, registry):
        with pytest.raises(DuplicateName):
            registry.add(CcEnvironment(name="glmcc"))

    def test_add_llm(self, registry):
        registry.add(LlmEnvironment(name="gpt", provider="openai"))
        assert "gpt" in registry.environments(EnvironmentKind.LLM)
        assert len(registry.environments(EnvironmentKind.LLM)) == 1


class TestDefaults:
    def test_set_and_clear_default(self, registry):
        registry.set_default(EnvironmentKind.CC, "glmcc")
        assert registry.get_default(EnvironmentKind.CC) == "glmcc"

        registry.clear_default(EnvironmentKind.CC)
        assert registry.get_default(EnvironmentKind.CC) is None

    def test_set_default_missing_raises(self, registry):
        with pytest.raises(EnvironmentNotFound):
            registry.set_default(EnvironmentKind.JAVA, "jdk-8")
        assert registry.get_default(EnvironmentKind.JAVA) is None

    def test_llm_has_no_default(self, registry):
        registry.add(LlmEnvironment(name="gpt", provider="openai"))
        with pytest.raises(ValueError):
            registry.set_default(EnvironmentKind.LLM, "gpt")

    def test_remove_default_clears_pointer(self, registry):
        registry.set_default(EnvironmentKind.JAVA, "jdk-17")

        assert registry.remove(EnvironmentKind.JAVA, "jdk-17") is True
        assert registry.get_default(EnvironmentKind.JAVA) is None

    def test_remove_non_default_keeps_pointer(self, registry):
        registry.add(JavaEnvironment(name="jdk-21", java_home="/opt/jdk-21"))
        registry.set_default(EnvironmentKind.JAVA, "jdk-17")

        assert registry.remove(EnvironmentKind.JAVA, "jdk-21") is False
        assert registry.get_default(EnvironmentKind.JAVA) == "jdk-17"


class TestMergeScan:
    def test_adds_new_candidates(self, registry, tmp_path):
        result = registry.merge_scan([_candidate(tmp_path / "temurin-21", version="21.0.1")])

        assert [env.name for env in result.added] == ["temurin-21"]
        added = registry.get(EnvironmentKind.JAVA, "temurin-21")
        assert added.source == "scanned"
        assert added.description == "Java 21.0.1 (Eclipse Adoptium)"

    def test_name_collision_keeps_manual_entry(self, registry, tmp_path):
        result = registry.merge_scan([_candidate(tmp_path / "jdk-17")])

        assert result.added == []
        assert result.skipped[0].reason == "name collision"
        assert registry.get(EnvironmentKind.JAVA, "jdk-17").java_home == "/usr/lib/jvm/java-17-openjdk"

    def test_already_registered_path(self, registry, tmp_path):
        home = tmp_path / "some-jdk"
        registry.add(JavaEnvironment(name="mine", java_home=str(home)))

        result = registry.merge_scan([_candidate(home)])

        assert result.added == []
        assert result.skipped[0].reason == "already registered as 'mine'"

    def test_removed_names_are_not_rescanned(self, registry, tmp_path):
        registry.add(JavaEnvironment(name="zulu-11", java_home=str(tmp_path / "zulu-11")))
        registry.remove(EnvironmentKind.JAVA, "zulu-11")

        result = registry.merge_scan([_candidate(tmp_path / "zulu-11", version="11")])

        assert result.added == []
        assert result.skipped[0].reason == "previously removed"

    def test_manual_add_forgets_removal(self, registry):
        registry.remove(EnvironmentKind.JAVA, "jdk-17")
        assert "jdk-17" in registry.config.removed_java_names

        registry.add(JavaEnvironment(name="jdk-17", java_home="/x"))
        assert "jdk-17" not in registry.config.removed_java_names

    def test_merge_is_idempotent(self, registry, tmp_path):
        candidates = [_candidate(tmp_path / "temurin-21", version="21")]
        registry.merge_scan(candidates)

        result = registry.merge_scan(candidates)

        assert result.added == []
        assert len(registry.environments(EnvironmentKind.JAVA)) == 2
