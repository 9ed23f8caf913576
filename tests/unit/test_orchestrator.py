"""
打包编排器单元测试

测试端到端的增量打包：幂等性、变更检测、基础归档变化后的完整失效、
命名空间隔离、过滤、失败隔离与注册表持久化。
"""

import json
from unittest.mock import patch

import pytest

from plugpack.build.collector import MissingInputDirectoryError
from plugpack.build.orchestrator import BuildOrchestrator, TargetStatus
from plugpack.build.registry import BASE_KEY, RegistryCorruptError, digest_file, digest_of
from plugpack.config.schema import PackagerConfig
from tests.conftest import BULKY, archive_names, corrupt_entry, read_archive


class TestTargetDiscovery:
    """基础归档发现与过滤测试"""

    def test_parse_identifier(self):
        """测试从文件名提取标识符"""
        orchestrator = BuildOrchestrator(PackagerConfig())
        assert orchestrator.parse_identifier("Backbone-Core-Spark.jar") == "Spark"
        assert orchestrator.parse_identifier("Backbone-Core-Spark-Packaged.jar") is None
        assert orchestrator.parse_identifier("Backbone-Core-.jar") is None
        assert orchestrator.parse_identifier("Other-Spark.jar") is None
        assert orchestrator.parse_identifier("Backbone-Core-Spark.zip") is None

    def test_discover_ignores_packaged_outputs(self, workspace):
        """测试打包产物与注册表不被当作基础归档"""
        workspace.add_base("Spark")
        workspace.add_base("Flink")
        workspace.packaged("Spark").write_bytes(b"")
        (workspace.root / "bin" / "last_modified.json").write_text("{}")

        targets = workspace.orchestrator().discover_targets()

        assert [t.identifier for t in targets] == ["Flink", "Spark"]
        assert targets[1].target_path == workspace.packaged("Spark")

    def test_select_targets_case_insensitive(self, workspace):
        """测试过滤条件大小写不敏感，未匹配的条件单独返回"""
        workspace.add_base("Spark")
        workspace.add_base("Flink")
        targets = workspace.orchestrator().discover_targets()

        selected, unmatched = BuildOrchestrator.select_targets(targets, ["spark", " FLINK ", "hive"])

        assert [t.identifier for t in selected] == ["Flink", "Spark"]
        assert unmatched == ["hive"]

    def test_select_without_filters_returns_all(self, workspace):
        """测试空过滤条件选择全部"""
        workspace.add_base("Spark")
        targets = workspace.orchestrator().discover_targets()

        assert BuildOrchestrator.select_targets(targets, [])[0] == targets
        assert BuildOrchestrator.select_targets(targets, None)[0] == targets


class TestIncrementalPackaging:
    """增量打包测试"""

    def test_concrete_scenario(self, workspace):
        """测试单个模块归档的完整打包结果"""
        workspace.add_base("Spark")
        module = workspace.add_module("m.jar", {
            "lib/x.class": b"x",
            "META-INF/sig.sf": b"signature",
        })

        report = workspace.orchestrator().run()

        assert report.success
        assert report.get("Spark").status == TargetStatus.UPDATED
        namespace = workspace.registry()["Spark"]
        assert set(namespace) == {BASE_KEY, "modules/m.jar"}
        assert namespace["modules/m.jar"] == digest_file(module)

        names = archive_names(workspace.packaged("Spark"))
        assert "lib/x.class" in names
        assert "META-INF/sig.sf" not in names
        assert "org/base/Main.class" in names

    def test_second_run_is_idempotent(self, workspace):
        """测试输入未变化时第二次运行不修改产物与注册表"""
        workspace.add_base("Spark")
        workspace.add_config("app.json", "{}")
        workspace.add_resource("tree/a.txt", "a")
        workspace.orchestrator().run()

        packaged_before = workspace.packaged("Spark").read_bytes()
        registry_before = workspace.registry()

        report = workspace.orchestrator().run()

        assert report.get("Spark").status == TargetStatus.UNCHANGED
        assert report.get("Spark").written == []
        assert workspace.packaged("Spark").read_bytes() == packaged_before
        assert workspace.registry() == registry_before

    def test_only_changed_file_is_rewritten(self, workspace):
        """测试只重写内容发生变化的文件"""
        workspace.add_base("Spark")
        workspace.add_config("a.json", "1")
        workspace.add_config("b.json", "2")
        workspace.orchestrator().run()

        workspace.add_config("b.json", "22")
        report = workspace.orchestrator().run()

        assert report.get("Spark").written == ["configs/b.json"]
        contents = read_archive(workspace.packaged("Spark"))
        assert contents["configs/a.json"] == b"1"
        assert contents["configs/b.json"] == b"22"

    def test_touch_without_content_change_is_ignored(self, workspace):
        """测试只修改时间戳不触发重写"""
        workspace.add_base("Spark")
        config = workspace.add_config("a.json", "1")
        workspace.orchestrator().run()

        config.write_text("1", encoding='utf-8')
        report = workspace.orchestrator().run()

        assert report.get("Spark").status == TargetStatus.UNCHANGED

    def test_base_change_invalidates_namespace(self, workspace):
        """测试基础归档变化后丢弃旧产物并重写全部输入"""
        workspace.add_base("Spark", {"org/base/Main.class": b"v1", "org/base/Old.class": b"old"})
        workspace.add_config("a.json", "1")
        workspace.add_resource("r.txt", "r")
        workspace.orchestrator().run()

        workspace.add_base("Spark", {"org/base/Main.class": b"v2"})
        report = workspace.orchestrator().run()

        result = report.get("Spark")
        assert result.status == TargetStatus.UPDATED
        assert sorted(result.written) == ["configs/a.json", "resources/r.txt"]

        contents = read_archive(workspace.packaged("Spark"))
        assert contents["org/base/Main.class"] == b"v2"
        assert "org/base/Old.class" not in contents
        assert contents["configs/a.json"] == b"1"
        assert workspace.registry()["Spark"][BASE_KEY] == digest_file(
            workspace.root / "bin" / "Backbone-Core-Spark.jar"
        )

    def test_missing_output_triggers_full_rebuild(self, workspace):
        """测试打包产物被删除后重新复制基础归档并写入全部输入"""
        workspace.add_base("Spark")
        workspace.add_config("a.json", "1")
        workspace.orchestrator().run()

        workspace.packaged("Spark").unlink()
        report = workspace.orchestrator().run()

        assert report.get("Spark").written == ["configs/a.json"]
        assert read_archive(workspace.packaged("Spark"))["configs/a.json"] == b"1"

    def test_namespaces_are_independent(self, workspace):
        """测试各基础归档的注册表命名空间互不影响"""
        workspace.add_base("Spark")
        workspace.add_base("Flink")
        workspace.add_config("a.json", "1")
        workspace.orchestrator().run(["Spark"])

        report = workspace.orchestrator().run()

        assert report.get("Spark").status == TargetStatus.UNCHANGED
        assert report.get("Flink").written == ["configs/a.json"]
        registry = workspace.registry()
        assert registry["Spark"]["configs/a.json"] == registry["Flink"]["configs/a.json"]

    def test_filter_processes_only_selected(self, workspace):
        """测试过滤后只处理选中的归档"""
        workspace.add_base("Spark")
        workspace.add_base("Flink")

        report = workspace.orchestrator().run(["flink"])

        assert [r.identifier for r in report.results] == ["Flink"]
        assert workspace.packaged("Flink").exists()
        assert not workspace.packaged("Spark").exists()
        assert "Spark" not in workspace.registry()

    def test_unmatched_filter_is_reported(self, workspace):
        """测试未匹配的过滤条件不视为错误"""
        workspace.add_base("Spark")

        report = workspace.orchestrator().run(["hive"])

        assert report.results == []
        assert report.unmatched_filters == ["hive"]
        assert report.success

    def test_removed_input_keeps_registry_entry(self, workspace):
        """测试删除的输入不会从产物或注册表中移除"""
        workspace.add_base("Spark")
        config = workspace.add_config("a.json", "1")
        workspace.orchestrator().run()

        config.unlink()
        report = workspace.orchestrator().run()

        assert report.get("Spark").status == TargetStatus.UNCHANGED
        assert "configs/a.json" in workspace.registry()["Spark"]
        assert "configs/a.json" in read_archive(workspace.packaged("Spark"))


class TestFailureHandling:
    """失败处理测试"""

    def test_failure_is_isolated_per_target(self, workspace):
        """测试单个归档失败不影响其他归档"""
        workspace.add_base("Spark")
        workspace.add_base("Flink")
        workspace.add_config("a.json", "1")
        workspace.orchestrator().run()

        # 损坏 Flink 的产物，但基础归档未变化，下次运行会尝试挂载它
        workspace.packaged("Flink").write_bytes(b"corrupted")
        workspace.add_config("a.json", "2")

        report = workspace.orchestrator().run()

        assert not report.success
        assert report.get("Flink").status == TargetStatus.FAILED
        assert "Backbone-Core-Flink-Packaged.jar" in report.get("Flink").error
        assert report.get("Spark").status == TargetStatus.UPDATED
        registry = workspace.registry()
        assert registry["Spark"]["configs/a.json"] == digest_of("2")
        assert registry["Flink"]["configs/a.json"] != registry["Spark"]["configs/a.json"]

    def test_missing_bin_directory_is_fatal(self, workspace):
        """测试基础归档目录缺失时整次运行失败"""
        (workspace.root / "bin").rmdir()

        with pytest.raises(MissingInputDirectoryError):
            workspace.orchestrator().run()

    def test_missing_input_directory_still_saves_registry(self, workspace):
        """测试致命错误时注册表仍被保存"""
        (workspace.root / "bin" / "last_modified.json").write_text(
            json.dumps({"Spark": {"configs/a.json": "00" * 16}}), encoding='utf-8'
        )
        (workspace.root / "configs").rmdir()

        with pytest.raises(MissingInputDirectoryError):
            workspace.orchestrator().run()

        assert workspace.registry() == {"Spark": {"configs/a.json": "00" * 16}}

    def test_corrupt_registry_aborts(self, workspace):
        """测试注册表损坏时默认终止，且不覆盖原文件"""
        workspace.add_base("Spark")
        registry_path = workspace.root / "bin" / "last_modified.json"
        registry_path.write_text("{broken", encoding='utf-8')

        with pytest.raises(RegistryCorruptError):
            workspace.orchestrator().run()

        assert registry_path.read_text(encoding='utf-8') == "{broken"
        assert not workspace.packaged("Spark").exists()

    def test_corrupt_registry_reset_policy(self, workspace):
        """测试 reset 策略下损坏的注册表被视为空并重新构建"""
        workspace.add_base("Spark")
        workspace.add_config("a.json", "1")
        (workspace.root / "bin" / "last_modified.json").write_text("{broken", encoding='utf-8')
        config = PackagerConfig.from_dict({"registry": {"on_corrupt": "reset"}})

        report = workspace.orchestrator(config).run()

        assert report.get("Spark").written == ["configs/a.json"]
        assert "configs/a.json" in workspace.registry()["Spark"]

    def test_failed_base_copy_marks_target_failed(self, workspace):
        """测试复制基础归档失败时该归档标记为失败且不记录基础摘要"""
        workspace.add_base("Spark")

        with patch("plugpack.build.orchestrator.shutil.copyfile", side_effect=OSError("disk full")):
            report = workspace.orchestrator().run()

        assert report.get("Spark").status == TargetStatus.FAILED
        assert "Spark" not in workspace.registry()
        assert [p.name for p in (workspace.root / "bin").iterdir() if p.name.endswith(".tmp")] == []


class TestMalformedModules:
    """异常模块归档测试"""

    def test_unsafe_entry_names_are_skipped(self, workspace):
        """测试含上级目录引用的模块条目被跳过，其余条目与其他归档照常处理"""
        workspace.add_base("Flink")
        workspace.add_base("Spark")
        workspace.add_module("m.jar", {"../evil.txt": b"evil", "lib/x.class": b"x"})

        report = workspace.orchestrator().run()

        assert report.success
        assert [r.identifier for r in report.results] == ["Flink", "Spark"]
        for identifier in ("Flink", "Spark"):
            result = report.get(identifier)
            assert result.status == TargetStatus.UPDATED
            assert "../evil.txt" in result.skipped_entries
            names = archive_names(workspace.packaged(identifier))
            assert "lib/x.class" in names
            assert not any("evil" in name for name in names)

    def test_corrupt_module_fails_only_its_targets(self, workspace):
        """测试模块数据损坏时每个归档单独失败，运行继续并保存注册表"""
        workspace.add_base("Flink")
        workspace.add_base("Spark")
        workspace.add_config("a.json", "1")
        module = workspace.add_module("m.jar", {"lib/bulky.bin": BULKY})
        corrupt_entry(module, "lib/bulky.bin")

        report = workspace.orchestrator().run()

        assert not report.success
        assert [r.identifier for r in report.results] == ["Flink", "Spark"]
        assert all(r.status == TargetStatus.FAILED for r in report.results)
        assert "/lib/bulky.bin" in report.get("Flink").error

        registry = workspace.registry()
        for identifier in ("Flink", "Spark"):
            # 配置在模块之前写入并已落盘
            assert registry[identifier]["configs/a.json"] == digest_of("1")
            assert "modules/m.jar" not in registry[identifier]
            assert BASE_KEY not in registry[identifier]

    def test_repaired_module_is_merged_on_next_run(self, workspace):
        """测试修复模块后下一次运行完成打包"""
        workspace.add_base("Flink")
        workspace.add_base("Spark")
        module = workspace.add_module("m.jar", {"lib/bulky.bin": BULKY})
        corrupt_entry(module, "lib/bulky.bin")
        workspace.orchestrator().run()

        workspace.add_module("m.jar", {"lib/bulky.bin": BULKY})
        report = workspace.orchestrator().run()

        assert report.success
        for identifier in ("Flink", "Spark"):
            assert read_archive(workspace.packaged(identifier))["lib/bulky.bin"] == BULKY
            assert "modules/m.jar" in workspace.registry()[identifier]
