"""作業ディレクトリと git リポジトリからファイル内容を読むヘルパー。"""

import logging
import os
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

SYMLINK_MODE = "120000"


def _run_git(repo_path: str | Path, args: list[str]) -> tuple[bool, bytes]:
    """git コマンドを実行する。"""
    try:
        proc = subprocess.run(
            ["git", "-C", str(repo_path), *args],
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        logger.debug(f"git コマンドを実行できません: {exc}")
        return False, str(exc).encode()
    if proc.returncode != 0:
        return False, (proc.stderr or proc.stdout).strip()
    return True, proc.stdout


def resolve_repo_root(path: str | Path) -> str | None:
    """パスを含む git リポジトリのルートを返す。git 管理外なら None。"""
    ok, out = _run_git(path, ["rev-parse", "--show-toplevel"])
    if not ok:
        return None
    return out.decode().strip() or None


def read_head_tree(repo_path: str | Path) -> dict[str, bytes]:
    """HEAD のツリー内容（パス → 内容）を返す。

    コミットがまだ無いリポジトリでは空のツリーを返す。
    サブモジュールとシンボリックリンクは作業ディレクトリ側と同じく読み飛ばす。
    """
    ok, out = _run_git(repo_path, ["ls-tree", "-r", "-z", "--full-tree", "HEAD"])
    if not ok:
        return {}

    tree: dict[str, bytes] = {}
    for entry in out.split(b"\0"):
        if not entry:
            continue
        meta, _, raw_path = entry.partition(b"\t")
        mode, object_type, object_id = meta.decode().split()
        if object_type != "blob" or mode == SYMLINK_MODE:
            continue
        ok, content = _run_git(repo_path, ["cat-file", "blob", object_id])
        if ok:
            tree[raw_path.decode()] = content
    return tree


def _is_excluded(relative_path: str, excluded_dirs: set[str]) -> bool:
    top = relative_path.split("/", 1)[0]
    return top in excluded_dirs


def list_worktree_files(
    root: str | Path,
    excluded_dirs: set[str],
    use_git: bool = True,
) -> dict[str, bytes]:
    """作業ディレクトリのファイル内容（パス → 内容）を返す。

    git リポジトリなら .gitignore を尊重して git ls-files で列挙し、
    そうでなければディレクトリを走査する。

    Args:
        root: 作業ディレクトリのルート
        excluded_dirs: ルート直下で除外するディレクトリ名
        use_git: git ls-files による列挙を試みるか

    Returns:
        ルートからの相対パス（/ 区切り） → 内容
    """
    root = Path(root)
    excluded = excluded_dirs | {".git"}
    paths: list[str] = []

    ok = False
    if use_git:
        ok, out = _run_git(root, ["ls-files", "-z", "--cached", "--others", "--exclude-standard"])
        if ok:
            paths = sorted({p.decode() for p in out.split(b"\0") if p})

    if not ok:
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = os.path.relpath(dirpath, root)
            if rel_dir == ".":
                dirnames[:] = [d for d in dirnames if d not in excluded]
                rel_dir = ""
            for filename in filenames:
                paths.append(f"{rel_dir}/{filename}" if rel_dir else filename)
        paths.sort()

    files: dict[str, bytes] = {}
    for relative in paths:
        if _is_excluded(relative, excluded):
            continue
        full = root / relative
        if full.is_symlink() or not full.is_file():
            continue
        try:
            files[relative] = full.read_bytes()
        except OSError as e:
            logger.warning(f"ファイルを読み込めません: {relative}: {e}")
    return files
