# extpack/builder/scratch.py
from __future__ import annotations
import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from extpack.core.ids import safeDirName, uuidv7

logger = logging.getLogger(__name__)

__all__ = ["ScratchRoot"]



class ScratchRoot:
    """
    Process-wide build root. Every build gets its own subdirectory, named
    `<id>-<uuid7>` and created with `mkdir(exist_ok=False)`, so concurrent
    builds never share one and no locking is needed.
    """

    def __init__(self, root: str | Path, *, keep: bool = False) -> None:
        self.root = Path(root)
        self.keep = keep
        # Only a root this instance created may be removed wholesale
        self._createdRoot = False

    def ensure(self) -> Path:
        try:
            self.root.mkdir(parents=True)
        except FileExistsError:
            pass
        else:
            self._createdRoot = True
            logger.debug("Created build root '%s'", self.root)
        return self.root

    @contextmanager
    def allocate(self, extensionId: str) -> Iterator[Path]:
        """Yields a fresh directory that is removed on exit, whatever the outcome."""
        self.ensure()
        scratchDir = self.root / uuidv7(prefix=f"{safeDirName(extensionId)}-")
        scratchDir.mkdir(exist_ok=False)
        logger.debug("Allocated scratch directory '%s'", scratchDir)
        try:
            yield scratchDir
        finally:
            if self.keep:
                logger.info("Keeping scratch directory '%s'", scratchDir)
            else:
                self._remove(scratchDir)

    def release(self) -> None:
        """
        Cleans up the build root once the run is over (unless scratch is kept).
        A root created by this instance is removed; a pre-existing one is only
        removed when it is empty, so nothing else living there is touched.
        """
        if self.keep or not self.root.exists():
            return
        if self._createdRoot:
            self._remove(self.root)
            return
        try:
            self.root.rmdir()
        except OSError:
            logger.debug("Leaving pre-existing build root '%s' in place", self.root)

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as err:
            logger.warning("Failed to remove scratch directory '%s': %s", path, err)
