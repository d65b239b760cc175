"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme
from rich.tree import Tree

SCOUT_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "stat.label": "dim",
    "stat.value": "bold",
    "chapter.num": "blue",
    "novel.name": "bold cyan",
})


def get_console() -> Console:
    """Return a Console instance with the theme applied."""
    return Console(theme=SCOUT_THEME)


def app_header(title: str = "novelscout") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "下载小说").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{escape(str(value))}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def file_tree(nodes: list[dict], title: str = "downloads") -> Tree:
    """Build a Rich Tree from ``FileNode.to_dict()`` entries."""
    tree = Tree(f"[bold]{title}[/]")

    def add(branch: Tree, items: list[dict]):
        for item in items:
            if item["is_dir"]:
                add(branch.add(f"[novel.name]{escape(item['name'])}[/]"), item["children"])
            else:
                branch.add(f"[chapter.num]{escape(item['name'])}[/]")

    add(tree, nodes)
    return tree


def analysis_panel(novel_name: str, analysis: dict) -> Panel:
    """Return a Panel showing the five aiAnalysis fields."""
    labels = {
        "genre": "题材",
        "style": "风格",
        "goldfinger": "金手指",
        "opening": "开篇",
        "highlights": "看点",
    }
    lines = [
        f"  [stat.label]{label}:[/] {escape(str(analysis.get(key, '')))}"
        for key, label in labels.items()
    ]
    return Panel(
        "\n".join(lines),
        title=f"[bold]{escape(novel_name)}[/] [muted]AI 分析[/]",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )


def reports_table(reports: list) -> Table:
    """Build a Rich Table of per-novel job reports."""
    table = Table(title="下载结果", box=box.ROUNDED, border_style="dim", show_header=True)
    table.add_column("小说", style="novel.name")
    table.add_column("新下载", justify="right")
    table.add_column("已存在", justify="right")
    table.add_column("失败", justify="right")
    table.add_column("结果")

    for r in reports:
        result = "[success]完成[/]" if r.success else f"[error]{escape(r.error[:60])}[/]"
        table.add_row(
            escape(r.title or r.url),
            str(r.downloaded),
            str(r.existing),
            str(r.failed),
            result,
        )
    return table
