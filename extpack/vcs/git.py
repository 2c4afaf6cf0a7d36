# extpack/vcs/git.py
from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Protocol, Sequence

from extpack.core.errors import VcsError, VcsTimeoutError
from extpack.registry.registry import Registry

logger = logging.getLogger(__name__)

__all__ = ["VersionControl", "GitCli", "loadBaselineRegistry"]



class VersionControl(Protocol):
    """Narrow seam to version control. Tests plug in an in-memory fake."""

    async def showFile(self, ref: str, path: str) -> bytes:
        """Raw bytes of `path` as of `ref`."""
        ...

    async def checkoutCommit(self, repositoryUrl: str, commitSha: str, destination: Path) -> Path:
        """Materializes one commit's tree into `destination` and returns it."""
        ...



class GitCli:
    """VersionControl backed by the `git` executable."""

    def __init__(self, *, gitBinary: str = "git", timeoutSeconds: float = 120.0, cwd: str | Path | None = None) -> None:
        self.gitBinary = gitBinary
        self.timeoutSeconds = timeoutSeconds
        self.cwd = Path(cwd) if cwd is not None else None

    async def _run(self, args: Sequence[str], *, cwd: Path | None = None) -> bytes:
        command = [self.gitBinary, *args]
        workDir = cwd or self.cwd
        logger.debug("Running %s", " ".join(command))
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(workDir) if workDir else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as err:
            # Missing or unexecutable binary, or a bad working directory
            raise VcsError(command, None, f"failed to start: {err}") from err
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeoutSeconds)
        except asyncio.TimeoutError as err:
            proc.kill()
            await proc.wait()
            raise VcsTimeoutError(command, self.timeoutSeconds) from err
        except asyncio.CancelledError:
            # Do not leave an orphaned git process behind on cancellation
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if proc.returncode != 0:
            raise VcsError(command, proc.returncode, stderr.decode("utf-8", errors="replace"))
        return stdout

    async def showFile(self, ref: str, path: str) -> bytes:
        return await self._run(["show", f"{ref}:{path}"])

    async def checkoutCommit(self, repositoryUrl: str, commitSha: str, destination: Path) -> Path:
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        await self._run(["init", "--quiet"], cwd=destination)
        await self._run(["remote", "add", "origin", repositoryUrl], cwd=destination)
        await self._run(["fetch", "--depth", "1", "origin", commitSha], cwd=destination)
        await self._run(["checkout", "--quiet", commitSha], cwd=destination)
        logger.info("Checked out %s at %s", repositoryUrl, commitSha)
        return destination



async def loadBaselineRegistry(vcs: VersionControl, ref: str, registryPath: str | Path) -> Registry:
    """The registry file as it was at `ref`, parsed with the same rules as the current one."""
    gitPath = Path(registryPath).as_posix()
    raw = await vcs.showFile(ref, gitPath)
    return Registry.fromToml(raw, source=f"{ref}:{gitPath}")
