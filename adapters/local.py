"""Filesystem adapter backed by the local machine."""
from __future__ import annotations

import grp
import os
import pwd
import shutil
import stat as stat_mod
from pathlib import Path
from typing import List, Optional

from .base import AdapterError, FileStat, FileSystem


def _owner_name(uid: int) -> Optional[str]:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return None


def _group_name(gid: int) -> Optional[str]:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return None


class LocalFileSystem(FileSystem):
    def exists(self, path: Path) -> bool:
        return os.path.lexists(path)

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir() and not Path(path).is_symlink()

    def stat(self, path: Path) -> FileStat:
        try:
            info = os.lstat(path)
        except OSError as exc:
            raise AdapterError(f"stat failed for {path}: {exc.strerror or exc}") from exc
        return FileStat(
            size=int(info.st_size),
            mode=stat_mod.S_IMODE(info.st_mode),
            mtime=float(info.st_mtime),
            uid=int(info.st_uid),
            gid=int(info.st_gid),
            is_dir=stat_mod.S_ISDIR(info.st_mode),
            owner=_owner_name(info.st_uid),
            group=_group_name(info.st_gid),
        )

    def list_dir(self, path: Path) -> List[str]:
        try:
            return sorted(os.listdir(path))
        except OSError as exc:
            raise AdapterError(f"cannot list {path}: {exc.strerror or exc}") from exc

    def copy(self, source: Path, dest: Path) -> None:
        source = Path(source)
        dest = Path(dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            if source.is_dir() and not source.is_symlink():
                shutil.copytree(source, dest, symlinks=True, dirs_exist_ok=True)
                shutil.copystat(source, dest)
            else:
                shutil.copy2(source, dest, follow_symlinks=False)
        except (OSError, shutil.Error) as exc:
            raise AdapterError(f"copy {source} -> {dest} failed: {exc}") from exc

    def remove(self, path: Path) -> None:
        path = Path(path)
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as exc:
            raise AdapterError(f"remove {path} failed: {exc.strerror or exc}") from exc

    def write_bytes(self, path: Path, data: bytes) -> None:
        path = Path(path)
        tmp = path.with_name(f".{path.name}.fub-tmp")
        try:
            mode = stat_mod.S_IMODE(os.stat(path).st_mode) if path.exists() else None
            with open(tmp, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            if mode is not None:
                os.chmod(tmp, mode)
            os.replace(tmp, path)
        except OSError as exc:
            if tmp.exists():
                tmp.unlink()
            raise AdapterError(f"write {path} failed: {exc.strerror or exc}") from exc

    def make_dir(self, path: Path) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise AdapterError(f"mkdir {path} failed: {exc.strerror or exc}") from exc

    def remove_empty_dir(self, path: Path) -> None:
        try:
            os.rmdir(path)
        except OSError as exc:
            raise AdapterError(f"rmdir {path} failed: {exc.strerror or exc}") from exc

    def apply_metadata(self, path: Path, meta: FileStat) -> None:
        try:
            current = os.lstat(path)
            if (current.st_uid, current.st_gid) != (meta.uid, meta.gid):
                os.chown(path, meta.uid, meta.gid, follow_symlinks=False)
            if not stat_mod.S_ISLNK(current.st_mode):
                os.chmod(path, meta.mode)
                os.utime(path, (meta.mtime, meta.mtime))
        except OSError as exc:
            raise AdapterError(f"restoring metadata on {path} failed: {exc.strerror or exc}") from exc


__all__ = ["LocalFileSystem"]
