"""差分エンジン。

ツリー同士の比較で TreeChange を作り、TreeChange から unified diff のハンクを作る。
"""

import difflib
import logging
import re
from abc import ABC, abstractmethod

from src.models.workspace import (
    DiffHunk,
    DiffKind,
    HunkHeader,
    TreeChange,
    TreeStatus,
    UnifiedDiff,
)

logger = logging.getLogger(__name__)

HUNK_HEADER_PATTERN = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
NO_NEWLINE_MARKER = "\\ No newline at end of file"


def parse_hunk_header(line: str) -> HunkHeader:
    """ハンクヘッダー行を解析する。

    Args:
        line: "@@ -1,3 +1,4 @@" 形式の行

    Returns:
        HunkHeader

    Raises:
        ValueError: ヘッダー形式でない場合
    """
    match = HUNK_HEADER_PATTERN.match(line)
    if not match:
        raise ValueError(f"ハンクヘッダーではありません: {line!r}")
    old_start, old_lines, new_start, new_lines = match.groups()
    return HunkHeader(
        old_start=int(old_start),
        old_lines=int(old_lines) if old_lines is not None else 1,
        new_start=int(new_start),
        new_lines=int(new_lines) if new_lines is not None else 1,
    )


def split_lines(text: str) -> list[str]:
    """LF だけを改行として行に分ける。各行は末尾の改行を含んだまま返す。"""
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def decode_text(data: bytes | None) -> str | None:
    """UTF-8 として読めればテキストを返す。バイナリの場合は None。"""
    if data is None:
        return ""
    if b"\0" in data:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def tree_changes(old: dict[str, bytes], new: dict[str, bytes]) -> list[TreeChange]:
    """2つのツリー（パス → 内容）を比較して変更一覧を返す。

    削除と追加の内容が完全に一致する組はリネームとして扱う。
    """
    added = sorted(path for path in new if path not in old)
    deleted = sorted(path for path in old if path not in new)
    modified = sorted(path for path in new if path in old and old[path] != new[path])

    changes: list[TreeChange] = []
    renamed_from: set[str] = set()
    for path in added:
        previous = next(
            (d for d in deleted if d not in renamed_from and old[d] == new[path]),
            None,
        )
        if previous is not None:
            renamed_from.add(previous)
            changes.append(
                TreeChange(
                    path=path,
                    status=TreeStatus.RENAMED,
                    previous_path=previous,
                    old_data=old[previous],
                    new_data=new[path],
                )
            )
        else:
            changes.append(TreeChange(path=path, status=TreeStatus.ADDED, new_data=new[path]))

    for path in deleted:
        if path not in renamed_from:
            changes.append(TreeChange(path=path, status=TreeStatus.DELETED, old_data=old[path]))

    for path in modified:
        changes.append(
            TreeChange(
                path=path,
                status=TreeStatus.MODIFIED,
                old_data=old[path],
                new_data=new[path],
            )
        )

    changes.sort(key=lambda change: change.path)
    return changes


class DiffEngine(ABC):
    """TreeChange から unified diff を作るエンジンの基底クラス。"""

    @abstractmethod
    def unified_diff(self, change: TreeChange, context_lines: int) -> UnifiedDiff:
        """1ファイル分の unified diff を返す。"""
        ...

    def unified_diff_for_changes(
        self, changes: list[TreeChange], context_lines: int
    ) -> list[tuple[TreeChange, UnifiedDiff]]:
        """変更ごとの unified diff を返す。"""
        return [(change, self.unified_diff(change, context_lines)) for change in changes]


class TextDiffEngine(DiffEngine):
    """difflib による行単位の差分エンジン。"""

    def __init__(self, max_file_size_bytes: int = 1_000_000) -> None:
        self.max_file_size_bytes = max_file_size_bytes

    def unified_diff(self, change: TreeChange, context_lines: int) -> UnifiedDiff:
        for data in (change.old_data, change.new_data):
            if data is not None and len(data) > self.max_file_size_bytes:
                return UnifiedDiff(kind=DiffKind.TOO_LARGE)

        old_text = decode_text(change.old_data)
        new_text = decode_text(change.new_data)
        if old_text is None or new_text is None:
            return UnifiedDiff(kind=DiffKind.BINARY)

        lines = difflib.unified_diff(
            split_lines(old_text),
            split_lines(new_text),
            n=context_lines,
            lineterm="",
        )
        return UnifiedDiff(kind=DiffKind.PATCH, hunks=self._split_hunks(lines))

    @staticmethod
    def _split_hunks(lines) -> list[DiffHunk]:
        hunks: list[DiffHunk] = []
        header: HunkHeader | None = None
        body: list[str] = []

        def flush() -> None:
            if header is not None:
                hunks.append(DiffHunk(header=header, diff="\n".join(body) + "\n"))

        for line in lines:
            if line.startswith("@@"):
                flush()
                header = parse_hunk_header(line)
                body = [line]
                continue
            if header is None:
                # ファイルヘッダー
                continue
            if line.endswith("\n"):
                body.append(line[:-1])
            else:
                body.append(line)
                body.append(NO_NEWLINE_MARKER)
        flush()
        return hunks
