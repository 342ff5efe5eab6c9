"""存储后端：把元数据上的结构变更落到本地文件系统（存储根目录下的镜像树）。

逻辑路径与磁盘路径一一对应：``<root>/<path>``。所有 ``OSError`` 统一转换为
``MirrorError``，由服务层决定是回滚元数据事务还是以“带警告的成功”返回。
"""

from __future__ import annotations

import os
import shutil
import stat as stat_module
import tempfile
import zipfile
from dataclasses import asdict, dataclass
from pathlib import Path, PurePosixPath
from typing import IO, Iterator, Union

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.exceptions import (
    InvalidPathError,
    MirrorError,
    NodeConflictError,
    NodeNotFoundError,
)
from app.packages.drive.core.logger import get_logger
from app.packages.drive.core.timezone import format_timestamp

logger = get_logger("mirror")


@dataclass
class FileInfo:
    name: str
    size: int
    mode: str
    mod_time: str
    is_directory: bool

    def to_dict(self) -> dict:
        return asdict(self)


class StorageBackend:
    """文件系统镜像接口。"""

    def resolve(self, rel: str) -> Path:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def is_dir(self, path: str) -> bool:
        raise NotImplementedError

    def write(self, path: str, content: bytes) -> None:
        raise NotImplementedError

    def make_dirs(self, path: str) -> None:
        raise NotImplementedError

    def rename(self, old_path: str, new_path: str) -> None:
        raise NotImplementedError

    def move(self, old_path: str, new_path: str) -> None:
        return self.rename(old_path, new_path)

    def remove(self, path: str) -> None:
        raise NotImplementedError

    def remove_tree(self, path: str) -> None:
        raise NotImplementedError

    def stat(self, path: str) -> FileInfo:
        raise NotImplementedError

    def package_subtree(self, path: str) -> Iterator[bytes]:
        raise NotImplementedError


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalMirror(StorageBackend):
    def __init__(self, root: Union[str, Path], *, chunk_size: int = 64 * 1024, spool_max_bytes: int = 16 * 1024 * 1024):
        self.root = Path(root).resolve()
        self.chunk_size = chunk_size
        self.spool_max_bytes = spool_max_bytes
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - 极端情况下可能失败
            raise MirrorError(f"无法创建存储根目录: {exc}") from exc

    # 统一的安全路径拼接，防止路径遍历
    def resolve(self, rel: str) -> Path:
        candidate = (self.root / rel.lstrip("/")).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise InvalidPathError("非法路径: 越权访问") from exc
        return candidate

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def is_dir(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    def write(self, path: str, content: bytes) -> None:
        """原子写入：先写到目标目录下的临时文件，再替换到位。

        失败时删除临时文件以及本次调用新建的上级目录，磁盘保持调用前的样子。
        """
        target = self.resolve(path)
        created = self._missing_dirs(target.parent)
        tmp_name = None
        try:
            if target.is_dir():
                raise NodeConflictError(f"同名目录已存在: {path}")
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-", suffix=".part")
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_name, target)
        except OSError as exc:
            logger.error("mirror.write failed path=%s", path, exc_info=True)
            if tmp_name is not None:
                self._discard(Path(tmp_name))
            for directory in created:
                self._discard(directory)
            raise MirrorError(f"写入文件失败: {exc.strerror or exc}", path) from exc

    def _missing_dirs(self, directory: Path) -> list[Path]:
        """``directory`` 及其上级中尚不存在的目录，由深到浅排列。"""
        missing: list[Path] = []
        current = directory
        while current != self.root and not current.exists():
            missing.append(current)
            current = current.parent
        return missing

    def _discard(self, path: Path) -> None:
        # 清理失败只记录，不覆盖原始错误
        try:
            if path.is_dir():
                path.rmdir()
            elif path.exists():
                path.unlink()
        except OSError:
            logger.warning("mirror.cleanup failed path=%s", path, exc_info=True)

    def make_dirs(self, path: str) -> None:
        target = self.resolve(path)
        if target.exists() and not target.is_dir():
            raise NodeConflictError(f"同名文件已存在: {path}")
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MirrorError(f"创建目录失败: {exc.strerror or exc}", path) from exc

    def rename(self, old_path: str, new_path: str) -> None:
        src = self.resolve(old_path)
        dst = self.resolve(new_path)
        if not src.exists():
            raise NodeNotFoundError(f"源路径不存在: {old_path}")
        if dst.exists():
            raise NodeConflictError(f"目标路径已存在: {new_path}")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            os.replace(src, dst)
        except OSError as exc:
            logger.error("mirror.rename failed %s -> %s", old_path, new_path, exc_info=True)
            raise MirrorError(f"文件系统重命名失败: {exc.strerror or exc}", old_path) from exc

    def remove(self, path: str) -> None:
        """删除单个文件或空目录。"""
        target = self.resolve(path)
        try:
            if target.is_dir():
                target.rmdir()
            else:
                target.unlink()
        except OSError as exc:
            raise MirrorError(f"删除失败: {exc.strerror or exc}", path) from exc

    def remove_tree(self, path: str) -> None:
        target = self.resolve(path)
        if target == self.root:
            raise InvalidPathError("不允许删除存储根目录")
        if not target.exists():
            # 允许幂等：不存在则忽略
            return
        try:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as exc:
            raise MirrorError(f"删除目录失败: {exc.strerror or exc}", path) from exc

    def stat(self, path: str) -> FileInfo:
        target = self.resolve(path)
        try:
            st = target.stat()
        except FileNotFoundError as exc:
            raise NodeNotFoundError(f"文件不存在: {path}") from exc
        except OSError as exc:
            raise MirrorError(f"读取文件信息失败: {exc.strerror or exc}", path) from exc
        return FileInfo(
            name=target.name,
            size=int(st.st_size),
            mode=stat_module.filemode(st.st_mode),
            mod_time=format_timestamp(st.st_mtime),
            is_directory=target.is_dir(),
        )

    def package_subtree(self, path: str) -> Iterator[bytes]:
        """把目录打成 zip 并按块返回。

        压缩在返回前完成，出错时调用方还能得到正常的错误响应；
        包内条目相对子树根目录、统一使用 '/' 分隔，空目录保留为目录条目。
        """
        base = self.resolve(path)
        if not base.exists():
            raise NodeNotFoundError(f"目录不存在: {path}")
        if not base.is_dir():
            raise InvalidPathError(f"目标不是目录: {path}")

        spool = tempfile.SpooledTemporaryFile(max_size=self.spool_max_bytes)
        try:
            with zipfile.ZipFile(spool, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                self._add_dir_to_zip(zf, base, PurePosixPath())
            spool.seek(0)
        except OSError as exc:
            spool.close()
            logger.error("mirror.package failed path=%s", path, exc_info=True)
            raise MirrorError(f"打包目录失败: {exc.strerror or exc}", path) from exc
        return self._iter_chunks(spool)

    def _add_dir_to_zip(self, zf: zipfile.ZipFile, source: Path, base_in_zip: PurePosixPath) -> None:
        # 符号链接可能指向存储根目录之外或形成环，一律不打包
        entries = sorted((p for p in source.iterdir() if not p.is_symlink()), key=lambda p: p.name)
        if not entries and str(base_in_zip) != ".":
            zf.writestr(f"{base_in_zip.as_posix()}/", b"")
            return
        for entry in entries:
            name_in_zip = base_in_zip / entry.name
            if entry.is_dir():
                self._add_dir_to_zip(zf, entry, name_in_zip)
            else:
                zf.write(entry, arcname=name_in_zip.as_posix())

    def _iter_chunks(self, stream: IO[bytes]) -> Iterator[bytes]:
        try:
            while True:
                chunk = stream.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            stream.close()


def build_mirror(root: Union[str, Path, None] = None) -> LocalMirror:
    settings = get_settings()
    return LocalMirror(
        root if root is not None else settings.storage_root_path,
        chunk_size=settings.zip_chunk_size,
        spool_max_bytes=settings.zip_spool_max_bytes,
    )
