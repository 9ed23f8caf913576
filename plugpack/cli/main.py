"""
Plugpack CLI 主入口

以零个或多个归档类型标识符为参数执行增量打包；不带参数时处理
所有发现的基础归档。
"""

import traceback
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..build.build_context import PackagingError
from ..build.orchestrator import BuildOrchestrator, BuildReport, TargetStatus
from ..config import ConfigError, ConfigValidationError, load_config_for_root
from ..utils.logging import OutputLevel, configure_logging


app = typer.Typer(
    name="plugpack",
    help="Plugpack - 平台归档增量打包工具",
    rich_markup_mode="rich",
    add_completion=False,
)

console = Console()
error_console = Console(stderr=True)

_STATUS_STYLES = {
    TargetStatus.UPDATED: ("green", "已更新"),
    TargetStatus.UNCHANGED: ("dim", "无变化"),
    TargetStatus.FAILED: ("red", "失败"),
}


def version_callback(value: bool) -> None:
    """显示版本信息"""
    if value:
        console.print(f"Plugpack v{__version__}")
        raise typer.Exit()


def print_summary(report: BuildReport) -> None:
    """输出各基础归档的处理结果表格"""
    if not report.results:
        console.print("[yellow]没有处理任何基础归档[/yellow]")
        return

    table = Table(title="打包结果")
    table.add_column("归档类型", style="cyan", no_wrap=True)
    table.add_column("状态")
    table.add_column("写入文件", justify="right")
    table.add_column("输出")

    for result in report.results:
        style, label = _STATUS_STYLES.get(result.status, ("default", result.status))
        detail = result.error if result.error else str(result.output_path)
        table.add_row(escape(result.identifier), f"[{style}]{label}[/{style}]", str(len(result.written)), escape(detail))

    console.print(table)


@app.command()
def package(
    archive_types: Optional[List[str]] = typer.Argument(
        None,
        help="要重新打包的归档类型（大小写不敏感），不指定则处理全部",
        show_default=False,
    ),
    root: Path = typer.Option(Path("."), "--root", "-r", help="项目根目录"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="配置文件路径（默认 <root>/plugpack.yaml）"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="日志输出文件"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True, help="显示版本信息"
    ),
) -> None:
    """增量打包平台归档

    把模块归档、配置文件与资源合并到 bin 目录下的各个基础归档中，
    只重写内容发生变化的文件。

    示例:
        plugpack
        plugpack Spark Flink
        plugpack --root ./dist -v
    """
    configure_logging(OutputLevel.DEBUG if verbose else OutputLevel.INFO, log_file)

    try:
        config_obj = load_config_for_root(root, config)
    except ConfigValidationError as e:
        error_console.print("[red]配置验证失败:[/red]")
        error_console.print(e.format_errors(), markup=False)
        raise typer.Exit(1)
    except ConfigError as e:
        error_console.print(f"配置错误: {e}", style="red", markup=False)
        raise typer.Exit(1)

    orchestrator = BuildOrchestrator(config_obj, root)
    try:
        report = orchestrator.run(archive_types or [])
    except PackagingError as e:
        error_console.print(f"✗ 打包失败: {e}", style="red", markup=False)
        if verbose:
            error_console.print(traceback.format_exc(), markup=False)
        raise typer.Exit(1)

    print_summary(report)

    if not report.success:
        for result in report.failed:
            error_console.print(f"✗ {result.identifier}: {result.error}", style="red", markup=False)
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
