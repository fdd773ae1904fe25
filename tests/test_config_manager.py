"""ConfigManager 测试用例"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import yaml

from toolchat.core.config.config_manager import (
    ConfigManager,
    _deep_merge,
    _merge_entries_by_key,
    build_config,
    load_config_from_file,
    resolve_workspace_dir,
)
from toolchat.core.config.models import Config, resolve_api_key
from toolchat.core.context.budget import ContextBudget
from toolchat.core.context.errors import ContextConfigError


def write_yaml(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


class TestMergeHelpers(unittest.TestCase):
    """配置合并函数测试类"""

    def test_merge_entries_by_key(self):
        """测试按 model 合并条目"""
        merged = _merge_entries_by_key(
            [{"model": "a", "timeout": 10}, {"model": "b"}],
            [{"model": "a", "timeout": 20, "api_key": "k"}, {"model": "c"}, {"name": "no key"}],
        )
        self.assertEqual(
            merged,
            [{"model": "a", "timeout": 20, "api_key": "k"}, {"model": "b"}, {"model": "c"}],
        )

    def test_deep_merge(self):
        """测试递归合并"""
        base = {"model": {"default": "a", "entries": [{"model": "a"}]}, "context": {"max_tokens": 100, "summary": {"keep_recent": 4}}}
        override = {"model": {"entries": [{"model": "b"}]}, "context": {"summary": {"model": "mini"}}}
        merged = _deep_merge(base, override)

        self.assertEqual(merged["model"]["default"], "a")
        self.assertEqual([e["model"] for e in merged["model"]["entries"]], ["a", "b"])
        self.assertEqual(merged["context"], {"max_tokens": 100, "summary": {"keep_recent": 4, "model": "mini"}})
        # 原字典不被修改
        self.assertNotIn("model", base["context"]["summary"])


class TestConfigFiles(unittest.TestCase):
    """配置文件读取测试类"""

    def setUp(self):
        """设置测试环境"""
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name).resolve()

    def tearDown(self):
        """清理测试环境"""
        self.tmp.cleanup()

    def test_load_missing_file(self):
        """测试文件不存在"""
        with self.assertRaises(FileNotFoundError):
            load_config_from_file(self.root / "missing.yaml")

    def test_load_non_mapping(self):
        """测试顶层不是映射"""
        path = write_yaml(self.root / "list.yaml", [1, 2])
        with self.assertRaises(yaml.YAMLError):
            load_config_from_file(path)

    def test_load_empty_file(self):
        """测试空文件返回空字典"""
        path = self.root / "empty.yaml"
        path.write_text("", encoding="utf-8")
        self.assertEqual(load_config_from_file(path), {})

    def test_resolve_workspace_dir(self):
        """测试向上查找工作区"""
        (self.root / ".toolchat").mkdir()
        nested = self.root / "src" / "pkg"
        nested.mkdir(parents=True)
        self.assertEqual(resolve_workspace_dir(nested), self.root)

    def test_resolve_workspace_dir_not_found(self):
        """测试找不到工作区时返回起始目录"""
        self.assertEqual(resolve_workspace_dir(self.root), self.root)


class TestConfigManager(unittest.TestCase):
    """ConfigManager 测试类"""

    def setUp(self):
        """设置测试环境"""
        ConfigManager.reset_instance()
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name).resolve()
        self.user_dir = self.root / "home" / ".toolchat"
        self.project = self.root / "project"
        self.project.mkdir()
        patcher = patch(
            "toolchat.core.config.config_manager.get_user_config_dir",
            return_value=self.user_dir,
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        """清理测试环境"""
        ConfigManager.reset_instance()
        self.tmp.cleanup()

    def test_singleton_pattern(self):
        """测试单例模式"""
        instance1 = ConfigManager.get_instance()
        instance2 = ConfigManager.get_instance()
        self.assertIs(instance1, instance2)

    def test_default_config(self):
        """测试没有配置文件时使用默认配置"""
        config = ConfigManager(start_dir=self.project).load()
        self.assertIsInstance(config, Config)
        self.assertEqual(config.source, "default")
        self.assertIsNone(config.config_file_path)
        self.assertEqual(config.workspace_dir, self.project)
        self.assertEqual(config.model_name, "gpt-4o")
        budget = config.context_budget
        defaults = ContextBudget()
        self.assertEqual(budget.max_tokens, defaults.max_tokens)
        self.assertEqual(budget.keep_recent_messages, defaults.keep_recent_messages)
        self.assertEqual(budget.strategy, "summary")

    def test_project_overrides_user(self):
        """测试项目配置覆盖用户配置"""
        write_yaml(self.user_dir / "config.yaml", {
            "model": {"default": "gpt-4o", "entries": [{"model": "gpt-4o", "api_key": "user-key", "timeout": 30}]},
            "context": {"max_tokens": 50_000, "summary": {"keep_recent": 6}},
        })
        project_config = write_yaml(self.project / ".toolchat" / "config.yaml", {
            "model": {"entries": [{"model": "gpt-4o", "timeout": 90}]},
            "context": {"strategy": "truncation", "truncation_keep_recent": 4},
        })

        config = ConfigManager(start_dir=self.project).load()

        self.assertEqual(config.source, "project")
        self.assertEqual(config.config_file_path, project_config)
        entry = config.get_current_model_entry()
        self.assertEqual(entry.api_key, "user-key")
        self.assertEqual(entry.timeout, 90)

        budget = config.context_budget
        self.assertEqual(budget.max_tokens, 50_000)
        self.assertEqual(budget.keep_recent_messages, 6)
        self.assertEqual(budget.strategy, "truncation")
        self.assertEqual(budget.truncation_keep_recent, 4)

    def test_invalid_yaml_falls_back(self):
        """测试 YAML 解析失败时使用默认配置"""
        path = self.user_dir / "config.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("model: [unclosed", encoding="utf-8")

        config = ConfigManager(start_dir=self.project).load()
        self.assertEqual(config.source, "default")

    def test_invalid_structure_falls_back(self):
        """测试配置结构非法时使用默认配置"""
        write_yaml(self.project / ".toolchat" / "config.yaml", {"context": {"strategy": "magic"}})
        config = ConfigManager(start_dir=self.project).load()
        self.assertEqual(config.source, "default")
        self.assertEqual(config.context.strategy, "summary")

    def test_get_config_lazy_load(self):
        """测试懒加载配置"""
        manager = ConfigManager(start_dir=self.project)
        self.assertIsNone(manager.config)
        config = manager.get_config()
        self.assertIs(manager.get_config(), config)


class TestConfigModel(unittest.TestCase):
    """Config 模型测试类"""

    def test_editing_options(self):
        """测试编辑配置转换"""
        config = build_config(
            {"context": {"strategy": "context_editing", "editing": {"exclude_tools": ["memory"], "clear_thinking": False}}},
            Path("."),
        )
        budget = config.context_budget
        self.assertEqual(budget.strategy, "context_editing")
        self.assertFalse(budget.editing.clear_thinking.enabled)
        self.assertEqual(budget.editing.clear_tool_uses.exclude_tools, ["memory"])
        self.assertEqual(budget.editing.model, "claude-sonnet-4-20250514")

    def test_invalid_budget_value(self):
        """测试非法的预算值"""
        config = build_config({"context": {"max_tokens": 0}}, Path("."))
        with self.assertRaises(ContextConfigError):
            config.context_budget

    def test_max_context_length(self):
        """测试上下文窗口大小"""
        config = build_config({"model": {"entries": [{"model": "qwen-qwq"}]}}, Path("."))
        self.assertEqual(config.max_context_length, 32_000)
        config = build_config({"model": {"entries": [{"model": "x", "max_context_length": 9000}]}}, Path("."))
        self.assertEqual(config.max_context_length, 9000)

    def test_llm_config_api_key(self):
        """测试 API Key 的来源优先级"""
        with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "anthropic-env", "TOOLCHAT_API_KEY": "fallback"}):
            config = build_config(
                {"model": {"entries": [{"model": "claude-sonnet-4-20250514", "provider": "anthropic"}]}},
                Path("."),
            )
            llm_config = config.llm_config
            self.assertEqual(llm_config.provider, "anthropic")
            self.assertEqual(llm_config.api_key, "anthropic-env")
            self.assertEqual(config.editing_llm_config.api_key, "anthropic-env")

    def test_resolve_api_key(self):
        """测试 API Key 解析"""
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(resolve_api_key("openai", "configured"), "configured")
            self.assertIsNone(resolve_api_key("openai"))
            os.environ["TOOLCHAT_API_KEY"] = "fallback"
            self.assertEqual(resolve_api_key("openai"), "fallback")
            os.environ["OPENAI_API_KEY"] = "openai-env"
            self.assertEqual(resolve_api_key("openai"), "openai-env")


if __name__ == "__main__":
    unittest.main()
