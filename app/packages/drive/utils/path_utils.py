"""Path utilities: validate and normalize logical node paths.

These helpers centralize the rules used across the repository, the mirror and
the ingestion pipeline:
- Logical paths are relative to the storage root, '/'-separated, with no
  leading or trailing '/'; the root itself is the empty string '';
- Absolute paths, drive letters, NUL bytes and '..' segments are rejected
  before anything is touched.
"""

from __future__ import annotations

import re

from app.packages.drive.core.constants import MAX_NAME_LENGTH, PATH_SEPARATOR
from app.packages.drive.core.exceptions import InvalidPathError

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def _check_length(segment: str) -> None:
    if len(segment) > MAX_NAME_LENGTH:
        raise InvalidPathError(f"名称过长: 单个路径段最多 {MAX_NAME_LENGTH} 个字符")


def norm_rel_path(p: str | None, *, allow_root: bool = False) -> str:
    raw = (p or "").strip()
    if "\x00" in raw:
        raise InvalidPathError("非法路径: 包含空字符")
    if raw.startswith(("/", "\\")) or _DRIVE_LETTER.match(raw):
        raise InvalidPathError("非法路径: 不允许绝对路径")
    segments = []
    for seg in raw.replace("\\", PATH_SEPARATOR).split(PATH_SEPARATOR):
        if seg in ("", "."):
            continue
        if seg == "..":
            raise InvalidPathError("非法路径: 不允许包含上级目录引用")
        _check_length(seg)
        segments.append(seg)
    if not segments and not allow_root:
        raise InvalidPathError("路径不能为空")
    return PATH_SEPARATOR.join(segments)


def norm_name(name: str | None) -> str:
    """Validate a single path segment (file or directory name)."""
    s = (name or "").strip()
    if not s or s in (".", ".."):
        raise InvalidPathError("名称不能为空")
    if "/" in s or "\\" in s or "\x00" in s:
        raise InvalidPathError("名称不能包含路径分隔符")
    _check_length(s)
    return s


def base_name(path: str) -> str:
    return path.rsplit(PATH_SEPARATOR, 1)[-1]


def parent_of(path: str) -> str:
    """Parent path; top-level entries have the root '' as parent."""
    if PATH_SEPARATOR not in path:
        return ""
    return path.rsplit(PATH_SEPARATOR, 1)[0]


def join_path(parent: str, name: str) -> str:
    return f"{parent}{PATH_SEPARATOR}{name}" if parent else name


def ancestors_of(path: str) -> list[str]:
    """Strict ancestor paths from the top down: 'a/b/c' -> ['a', 'a/b']."""
    parts = path.split(PATH_SEPARATOR)
    return [PATH_SEPARATOR.join(parts[:i]) for i in range(1, len(parts))]


def replace_prefix(path: str, old_prefix: str, new_prefix: str) -> str:
    """Rewrite ``path`` when it equals ``old_prefix`` or lies beneath it."""
    if path == old_prefix:
        return new_prefix
    if path.startswith(old_prefix + PATH_SEPARATOR):
        return new_prefix + path[len(old_prefix):]
    return path
