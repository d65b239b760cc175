"""CLI entry point: novelscout 网文抓取与分析工具。

用法：
  novelscout init                         初始化工作目录
  novelscout download URL -c 10           下载单本小说
  novelscout rank URL -m 5 -c 3           扫描榜单并批量下载
  novelscout analyze 书名                 AI 自动分析开篇
  novelscout --help                       查看所有命令
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Ensure UTF-8 output on Windows to avoid GBK encoding errors with Rich
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")

import click
from rich.markup import escape
from rich.table import Table

from cli.theme import (
    analysis_panel,
    app_header,
    command_panel,
    file_tree,
    get_console,
    reports_table,
    success_panel,
)
from config.exceptions import NovelScoutError
from config.logging_config import setup_logging
from config.settings import Settings, get_settings
from host.commands import CommandHost
from models.enums import AnalysisState, Platform
from models.store import LocalStore
from tools.ai_client import AnalysisEngine
from workflow.analysis import analyze_novel, split_chapter
from workflow.callbacks import RichProgressCallback
from workflow.orchestrator import Orchestrator

console = get_console()
logger = logging.getLogger(__name__)

_PLATFORMS = click.Choice([p.value for p in Platform])


def _init_logging(settings: Settings, verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


def _fail(message: str, code: int = 1):
    console.print(f"[error]{escape(message)}[/]")
    sys.exit(code)


def _host(settings: Settings) -> CommandHost:
    # The CLI renders events itself; the host is used for its direct commands
    return CommandHost(settings, emit=lambda topic, payload: None)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--workspace", "-w", default=None, type=click.Path(path_type=Path), help="工作目录（默认读取 .env）")
@click.pass_context
def cli(ctx, verbose, workspace):
    """novelscout: 多平台网文抓取、榜单扫描与 AI 拆书工具

    \b
    先初始化工作目录：
      novelscout init
    再下载或分析：
      novelscout download https://fanqienovel.com/page/7143038691944959011 -c 5
      novelscout analyze 书名
    """
    settings = Settings(workspace_root=workspace) if workspace else get_settings()
    ctx.obj = settings
    _init_logging(settings, verbose)


# ---------------------------------------------------------------------------
# workspace
# ---------------------------------------------------------------------------

@cli.command()
@click.pass_obj
def init(settings: Settings):
    """创建工作目录（downloads/ 与 logs/）。"""
    try:
        _host(settings).ensure_workspace_dirs()
    except NovelScoutError as e:
        _fail(f"初始化失败：{e}")
    console.print(success_panel("工作目录已就绪", f"  [stat.value]{escape(str(settings.workspace_root.resolve()))}[/]"))


# ---------------------------------------------------------------------------
# download / rank
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("url")
@click.option("--count", "-c", default=10, show_default=True, help="下载章节数（0 = 仅元数据）")
@click.option("--platform", "-p", default=Platform.FANQIE.value, type=_PLATFORMS, show_default=True, help="来源平台")
@click.option("--visible", is_flag=True, help="显示浏览器窗口，便于手动通过验证")
@click.pass_obj
def download(settings: Settings, url, count, platform, visible):
    """下载单本小说的前 N 章。

    示例：
      novelscout download https://fanqienovel.com/page/7143038691944959011 -c 20
      novelscout download https://www.qidian.com/book/1035420986/ -p qidian --visible
    """
    console.print(app_header())
    console.print(command_panel("下载小说", {"平台": platform, "链接": url, "章节": str(count)}))

    async def run():
        async with Orchestrator(settings, callback=cb) as orchestrator:
            return await orchestrator.run_single(platform, url, count, visible or None)

    cb = RichProgressCallback(console=console)
    try:
        cb.start()
        try:
            report = asyncio.run(run())
        finally:
            cb.stop()
    except KeyboardInterrupt:
        _fail("已中断", 130)
    except NovelScoutError as e:
        _fail(f"下载失败：{e}")

    console.print(reports_table([report]))
    if not report.success:
        sys.exit(1)


@cli.command()
@click.argument("rank_url")
@click.option("--max-novels", "-m", default=10, show_default=True, help="抓取榜单前 N 本")
@click.option("--count", "-c", default=5, show_default=True, help="每本下载章节数")
@click.option("--platform", "-p", default=Platform.FANQIE.value, type=_PLATFORMS, show_default=True, help="来源平台")
@click.option("--visible", is_flag=True, help="显示浏览器窗口，便于手动通过验证")
@click.pass_obj
def rank(settings: Settings, rank_url, max_novels, count, platform, visible):
    """扫描榜单并批量下载每本小说的前 N 章。

    示例：
      novelscout rank https://fanqienovel.com/rank/1_2_1141 -m 5 -c 3
    """
    console.print(app_header())
    console.print(command_panel("榜单扫描", {
        "平台": platform,
        "榜单": rank_url,
        "小说数": str(max_novels),
        "每本章节": str(count),
    }))

    async def run():
        async with Orchestrator(settings, callback=cb) as orchestrator:
            return await orchestrator.run_rank_scan(platform, rank_url, max_novels, count, visible or None)

    cb = RichProgressCallback(console=console)
    try:
        cb.start()
        try:
            reports = asyncio.run(run())
        finally:
            cb.stop()
    except KeyboardInterrupt:
        _fail("已中断", 130)
    except NovelScoutError as e:
        _fail(f"扫描失败：{e}")

    if reports:
        console.print(reports_table(reports))


# ---------------------------------------------------------------------------
# analysis
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("novel_name")
@click.pass_obj
def analyze(settings: Settings, novel_name):
    """AI 自动分析小说开篇，结果写入 info.json 的 aiAnalysis。"""
    store = LocalStore(settings.workspace_root)
    console.print(app_header())
    console.print(command_panel("AI 分析", {
        "小说": novel_name,
        "模型": settings.ai_model,
        "章节": f"前 {settings.auto_analysis_chapters} 章",
    }))

    cb = RichProgressCallback(console=console)
    try:
        result = asyncio.run(analyze_novel(settings, store, novel_name, callback=cb))
    except KeyboardInterrupt:
        _fail("已中断", 130)
    except NovelScoutError as e:
        _fail(f"分析失败：{e}")

    if result is None:
        _fail("未能得到有效的分析结果，info.json 未修改")
    console.print()
    console.print(analysis_panel(novel_name, result.to_dict()))


@cli.command()
@click.argument("novel_name")
@click.argument("chapter_file")
@click.option("--prompt", default="", help="自定义提示词（默认使用拆书细纲提示词）")
@click.option("--export", "export_result", is_flag=True, help="导出到 result/<书名>/<章节号>.md")
@click.pass_obj
def split(settings: Settings, novel_name, chapter_file, prompt, export_result):
    """AI 拆解单章为细纲。

    示例：
      novelscout split 书名 01.txt --export
    """
    store = LocalStore(settings.workspace_root)
    try:
        content = store.read_chapter(novel_name, chapter_file, with_header=False)
    except NovelScoutError as e:
        _fail(str(e))

    cb = RichProgressCallback(console=console)
    try:
        session = asyncio.run(split_chapter(settings, content, prompt, callback=cb))
    except KeyboardInterrupt:
        _fail("已中断", 130)
    except NovelScoutError as e:
        _fail(f"分析失败：{e}")

    if session.state is AnalysisState.FAILED:
        sys.exit(1)
    if export_result:
        stem = Path(chapter_file).stem
        index = int(stem) if stem.isdigit() else 0
        path = store.export_chapter(novel_name, index, session.text)
        console.print(f"已导出: [info]{escape(str(path))}[/]")


@cli.command()
@click.pass_obj
def models(settings: Settings):
    """列出 AI 接口可用的模型。"""
    try:
        model_ids = asyncio.run(AnalysisEngine(settings).fetch_models(settings.ai_api_base, settings.ai_api_key))
    except NovelScoutError as e:
        _fail(f"获取模型失败：{e}")

    table = Table(title=settings.ai_api_base, show_header=True, border_style="dim")
    table.add_column("模型")
    for model_id in model_ids:
        marker = " [success]*[/]" if model_id == settings.ai_model else ""
        table.add_row(f"{escape(model_id)}{marker}")
    console.print(table)


# ---------------------------------------------------------------------------
# store
# ---------------------------------------------------------------------------

@cli.command()
@click.pass_obj
def tree(settings: Settings):
    """显示已下载的小说与章节。"""
    nodes = _host(settings).get_file_tree()
    if not nodes:
        console.print("[muted]暂无下载内容[/]")
        return
    console.print(file_tree(nodes))


@cli.command(name="delete-novel")
@click.argument("novel_name")
@click.option("--yes", "-y", is_flag=True, help="跳过确认")
@click.pass_obj
def delete_novel(settings: Settings, novel_name, yes):
    """删除整本小说目录。"""
    if not yes and not click.confirm(f"确定删除《{novel_name}》？"):
        return
    try:
        message = _host(settings).delete_novel(novel_name)
    except NovelScoutError as e:
        _fail(str(e))
    console.print(f"[success]{escape(message)}[/]")


@cli.command(name="delete-chapter")
@click.argument("novel_name")
@click.argument("chapter_file")
@click.pass_obj
def delete_chapter(settings: Settings, novel_name, chapter_file):
    """删除单个章节文件（不重新统计字数）。"""
    try:
        message = _host(settings).delete_chapter(novel_name, chapter_file)
    except NovelScoutError as e:
        _fail(str(e))
    console.print(f"[success]{escape(message)}[/]")


@cli.command()
@click.option("--clear", "clear_logs", is_flag=True, help="清空日志")
@click.pass_obj
def logs(settings: Settings, clear_logs):
    """查看或清空工作目录日志。"""
    host = _host(settings)
    if clear_logs:
        console.print(f"[success]{host.clear_log()}[/]")
        return
    console.print(host.read_log_file(), markup=False, highlight=False)


if __name__ == "__main__":
    cli()
