# extpack/builder/archive.py
from __future__ import annotations
import gzip
import stat
import tarfile
from pathlib import Path

__all__ = ["createTarGz"]



def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    # Strip everything that differs between machines or runs.
    info.mtime = 0
    info.uid = 0
    info.gid = 0
    info.uname = ""
    info.gname = ""
    if info.isdir():
        info.mode = 0o755
    elif info.isfile():
        info.mode = 0o755 if info.mode & stat.S_IXUSR else 0o644
    return info



def createTarGz(sourceDir: str | Path, archivePath: str | Path) -> Path:
    """
    Packs the contents of `sourceDir` (not the directory itself) into a gzip
    tarball. Entries are sorted by path and carry no timestamps or owners, so
    identical trees produce identical bytes.
    """
    sourceDir = Path(sourceDir)
    archivePath = Path(archivePath)
    entries = sorted(sourceDir.rglob("*"), key=lambda path: path.relative_to(sourceDir).as_posix())

    with archivePath.open("wb") as raw:
        with gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0) as gz:
            with tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
                for path in entries:
                    arcname = path.relative_to(sourceDir).as_posix()
                    tar.add(path, arcname=arcname, recursive=False, filter=_normalize)
    return archivePath
