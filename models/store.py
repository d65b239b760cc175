"""File-backed store for downloaded novels under a workspace directory.

Layout::

    <workspace>/downloads/<novel>/info.json
    <workspace>/downloads/<novel>/01.txt, 02.txt, ...
    <workspace>/logs/app.log
    <workspace>/result/<novel>/<index>.md      (exported chapters)

Every write is a whole-file replacement through a temp file in the same
directory, so readers never observe partial content. Metadata updates are a
shallow read-merge-write; writers to one novel are serialized by the caller.
"""

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from config.exceptions import ConfigurationError, EntryNotFoundError, StoreError
from models.chapter import ChapterContent, strip_chapter_header
from models.novel import NovelMetadata
from tools.text_utils import count_chinese_chars, sanitize_filename

logger = logging.getLogger(__name__)

METADATA_FILENAME = "info.json"
CHAPTER_EXTENSION = ".txt"
_TREE_EXTENSIONS = {".txt", ".json"}


@dataclass
class FileNode:
    """One entry of the downloads tree."""
    name: str
    path: str  # relative to the downloads directory
    is_dir: bool
    children: list["FileNode"] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "is_dir": self.is_dir,
            "children": [c.to_dict() for c in self.children],
        }


def chapter_filename(index: int) -> str:
    """Zero-padded chapter file name: 1 -> "01.txt"."""
    return f"{index:02d}{CHAPTER_EXTENSION}"


def chapter_sort_key(name: str) -> tuple:
    """Numbered chapter files in chapter order, everything else after by name."""
    stem = Path(name).stem
    if stem.isdigit():
        return (0, int(stem), name)
    return (1, 0, name)


def ensure_workspace_dirs(workspace_root: str | Path) -> Path:
    """Create the downloads/ and logs/ directories below the workspace."""
    root = Path(workspace_root)
    for sub in ("downloads", "logs"):
        try:
            (root / sub).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"创建 {sub} 目录失败: {e}", {"path": str(root / sub)}) from e
    return root


def _atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` via a temp file and an atomic rename."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class LocalStore:
    """Owns all on-disk chapter and metadata files of a workspace."""

    def __init__(self, workspace_root: str | Path):
        self.workspace_root = Path(workspace_root)
        self.downloads_dir = self.workspace_root / "downloads"
        self.logs_dir = self.workspace_root / "logs"
        self.result_dir = self.workspace_root / "result"

    def check_ready(self) -> None:
        """Fail fast when the workspace was not prepared by the caller."""
        if not self.downloads_dir.is_dir():
            raise ConfigurationError(
                "工作目录未初始化: 缺少 downloads 目录",
                {"path": str(self.downloads_dir)},
            )

    # ---- Paths ----

    def novel_dir_name(self, title: str) -> str:
        return sanitize_filename(title)

    def novel_path(self, novel_name: str) -> Path:
        return self._inside(self.downloads_dir, novel_name)

    def chapter_path(self, novel_name: str, index: int) -> Path:
        return self.novel_path(novel_name) / chapter_filename(index)

    def _inside(self, base: Path, *parts: str) -> Path:
        """Join ``parts`` onto ``base`` and refuse anything escaping it."""
        path = base.joinpath(*parts).resolve()
        if path != base.resolve() and base.resolve() not in path.parents:
            raise StoreError("路径超出工作目录", {"path": "/".join(parts)})
        return path

    # ---- Novels ----

    def ensure_novel_dir(self, novel_name: str) -> Path:
        path = self.novel_path(novel_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def list_novels(self) -> list[str]:
        if not self.downloads_dir.exists():
            return []
        return sorted(p.name for p in self.downloads_dir.iterdir() if p.is_dir())

    def delete_novel(self, novel_name: str) -> None:
        """Remove a novel directory with everything in it."""
        path = self.novel_path(novel_name)
        if not path.exists():
            raise EntryNotFoundError("小说目录不存在", str(path))
        if not path.is_dir():
            raise StoreError("路径不是目录", {"path": str(path)})
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise StoreError(f"删除失败: {e}", {"path": str(path)}) from e
        logger.info("Deleted novel directory %s", path)

    # ---- Chapters ----

    def chapter_exists(self, novel_name: str, index: int) -> bool:
        return self.chapter_path(novel_name, index).is_file()

    def write_chapter(self, novel_name: str, content: ChapterContent) -> Path:
        """Write (or fully replace) one chapter file."""
        path = self.chapter_path(novel_name, content.ref.index)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            _atomic_write_text(path, content.render())
        except OSError as e:
            raise StoreError(f"写入章节失败: {e}", {"path": str(path)}) from e
        logger.debug("Wrote chapter %s (%d 字)", path, count_chinese_chars(content.body))
        return path

    def list_chapters(self, novel_name: str) -> list[str]:
        path = self.novel_path(novel_name)
        if not path.is_dir():
            return []
        return sorted(
            (p.name for p in path.iterdir()
             if p.is_file() and p.suffix == CHAPTER_EXTENSION and not p.name.startswith(".")),
            key=chapter_sort_key,
        )

    def read_chapter(self, novel_name: str, filename: str, with_header: bool = True) -> str:
        path = self._inside(self.downloads_dir, novel_name, filename)
        if not path.is_file():
            raise EntryNotFoundError("章节文件不存在", str(path))
        text = path.read_text(encoding="utf-8")
        return text if with_header else strip_chapter_header(text)

    def delete_chapter(self, novel_name: str, filename: str) -> None:
        """Remove exactly one chapter file.

        Siblings and info.json are left alone; the stored word count is not
        recomputed.
        """
        path = self._inside(self.downloads_dir, novel_name, filename)
        if not path.exists():
            raise EntryNotFoundError("章节文件不存在", str(path))
        if not path.is_file():
            raise StoreError("路径不是文件", {"path": str(path)})
        try:
            path.unlink()
        except OSError as e:
            raise StoreError(f"删除失败: {e}", {"path": str(path)}) from e
        logger.info("Deleted chapter %s/%s", novel_name, filename)

    def build_excerpt(self, novel_name: str, max_chapters: int) -> str:
        """Concatenate the first ``max_chapters`` chapter bodies."""
        parts = []
        for filename in self.list_chapters(novel_name)[:max_chapters]:
            parts.append(self.read_chapter(novel_name, filename, with_header=False).strip())
        return "\n\n".join(p for p in parts if p)

    # ---- Metadata ----

    def metadata_path(self, novel_name: str) -> Path:
        return self.novel_path(novel_name) / METADATA_FILENAME

    def _read_metadata_raw(self, novel_name: str) -> Optional[dict]:
        path = self.metadata_path(novel_name)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"读取 {METADATA_FILENAME} 失败: {e}", {"path": str(path)}) from e
        if not isinstance(data, dict):
            raise StoreError(f"{METADATA_FILENAME} 不是 JSON 对象", {"path": str(path)})
        return data

    def read_metadata(self, novel_name: str) -> Optional[NovelMetadata]:
        data = self._read_metadata_raw(novel_name)
        return NovelMetadata.from_dict(data) if data is not None else None

    def merge_metadata(self, novel_name: str, fields: dict, create: bool = True) -> dict:
        """Shallow-merge ``fields`` into the novel's info.json.

        Only supplied keys are overwritten; everything else (including keys this
        version does not know about) is kept.

        Args:
            novel_name: Directory name of the novel.
            fields: Top-level keys to set.
            create: Create info.json when missing instead of failing.

        Returns:
            The merged document as written.
        """
        current = self._read_metadata_raw(novel_name)
        if current is None:
            if not create:
                raise EntryNotFoundError(
                    f"{METADATA_FILENAME} not found", str(self.metadata_path(novel_name))
                )
            current = {}
            self.ensure_novel_dir(novel_name)
        current.update(fields)
        path = self.metadata_path(novel_name)
        try:
            _atomic_write_text(path, json.dumps(current, ensure_ascii=False, indent=2))
        except OSError as e:
            raise StoreError(f"写入 {METADATA_FILENAME} 失败: {e}", {"path": str(path)}) from e
        logger.debug("Merged metadata keys %s into %s", sorted(fields), path)
        return current

    def save_catalog_metadata(self, metadata: NovelMetadata) -> str:
        """Persist catalog-derived fields, keeping any stored aiAnalysis.

        Returns:
            The novel directory name.
        """
        novel_name = self.novel_dir_name(metadata.title)
        self.ensure_novel_dir(novel_name)
        self.merge_metadata(novel_name, metadata.catalog_fields())
        return novel_name

    # ---- Tree / raw files ----

    def get_file_tree(self) -> list[FileNode]:
        if not self.downloads_dir.exists():
            return []
        return self._read_dir(Path(""))

    def _read_dir(self, relative: Path) -> list[FileNode]:
        nodes = []
        for entry in (self.downloads_dir / relative).iterdir():
            if entry.name.startswith("."):
                continue
            is_dir = entry.is_dir()
            if not is_dir and entry.suffix not in _TREE_EXTENSIONS:
                continue
            rel = relative / entry.name
            nodes.append(FileNode(
                name=entry.name,
                path=rel.as_posix(),
                is_dir=is_dir,
                children=self._read_dir(rel) if is_dir else [],
            ))
        # Directories first, then chapters in numeric order
        nodes.sort(key=lambda n: (not n.is_dir, chapter_sort_key(n.name)))
        return nodes

    def read_file(self, relative_path: str) -> str:
        path = self._inside(self.downloads_dir, relative_path)
        if not path.is_file():
            raise EntryNotFoundError("文件不存在", str(path))
        return path.read_text(encoding="utf-8")

    def export_chapter(self, novel_title: str, chapter_index: int, content: str) -> Path:
        """Write an analysis/export as result/<title>/<index>.md."""
        target_dir = self._inside(self.result_dir, sanitize_filename(novel_title))
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            path = target_dir / f"{chapter_index}.md"
            _atomic_write_text(path, content)
        except OSError as e:
            raise StoreError(f"写入文件失败: {e}", {"path": str(target_dir)}) from e
        logger.info("Exported chapter to %s", path)
        return path
