"""Tests for loading and querying the plugin knowledge base."""
import json

import pytest

from jenkins2gitlab.models.schemas import MappingKind
from jenkins2gitlab.services.pipeline.knowledge_base import (
    KNOWLEDGE_BASE_VERSION,
    KnowledgeBaseError,
    PluginKnowledgeBase,
    load_knowledge_base,
)


class TestBuiltInTable:
    def test_default_table(self, knowledge_base):
        assert knowledge_base.version == KNOWLEDGE_BASE_VERSION
        assert "git" in knowledge_base
        assert "acme-widget" not in knowledge_base
        assert len(knowledge_base) == len(knowledge_base.identifiers())

    def test_lookup(self, knowledge_base):
        entry = knowledge_base.lookup("pipeline-maven")
        assert entry.confidence == 0.98
        assert entry.mapping_kind == MappingKind.DIRECT
        assert knowledge_base.lookup("missing") is None

    def test_load_without_path_uses_built_in_table(self):
        assert load_knowledge_base(None).identifiers() == PluginKnowledgeBase.default().identifiers()


class TestRecords:
    def test_versioned_entry_overrides_plain_entry(self):
        kb = PluginKnowledgeBase.from_records([
            {"identifier": "slack", "target_equivalent": "integration", "confidence": 0.8},
            {"identifier": "slack@1.0", "target_equivalent": "webhook only", "confidence": 0.4},
        ])
        assert kb.lookup("slack", "1.0").target_equivalent == "webhook only"
        assert kb.lookup("slack", "2.0").target_equivalent == "integration"
        assert kb.lookup("slack").target_equivalent == "integration"

    def test_mapping_form(self):
        kb = PluginKnowledgeBase.from_records({
            "git": {"target_equivalent": "checkout", "confidence": 0.9},
        })
        assert kb.identifiers() == ["git"]

    def test_invalid_entry_raises(self):
        with pytest.raises(KnowledgeBaseError):
            PluginKnowledgeBase.from_records([
                {"identifier": "git", "target_equivalent": "checkout", "confidence": 1.5},
            ])

    def test_missing_field_raises(self):
        with pytest.raises(KnowledgeBaseError):
            PluginKnowledgeBase.from_records([{"identifier": "git"}])


class TestFiles:
    def test_yaml_file_with_version(self, tmp_path):
        path = tmp_path / "plugins.yaml"
        path.write_text(
            "version: '2025.2'\n"
            "plugins:\n"
            "  git:\n"
            "    target_equivalent: built-in checkout\n"
            "    confidence: 0.9\n"
            "  acme-widget:\n"
            "    target_equivalent: custom script\n"
            "    confidence: 0.5\n"
            "    criticality: low\n",
            encoding="utf-8",
        )
        kb = PluginKnowledgeBase.from_file(str(path))
        assert kb.version == "2025.2"
        assert sorted(kb.identifiers()) == ["acme-widget", "git"]

    def test_json_list_file(self, tmp_path):
        path = tmp_path / "plugins.json"
        path.write_text(json.dumps([
            {"identifier": "junit", "target_equivalent": "reports", "confidence": 0.99},
        ]), encoding="utf-8")
        kb = load_knowledge_base(str(path))
        assert kb.identifiers() == ["junit"]
        assert kb.version == KNOWLEDGE_BASE_VERSION

    def test_missing_file_is_fatal(self, tmp_path):
        with pytest.raises(KnowledgeBaseError):
            PluginKnowledgeBase.from_file(str(tmp_path / "absent.yaml"))

    def test_malformed_yaml_is_fatal(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("plugins: [unclosed\n", encoding="utf-8")
        with pytest.raises(KnowledgeBaseError):
            PluginKnowledgeBase.from_file(str(path))

    def test_empty_file_is_fatal(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("plugins: []\n", encoding="utf-8")
        with pytest.raises(KnowledgeBaseError):
            PluginKnowledgeBase.from_file(str(path))
