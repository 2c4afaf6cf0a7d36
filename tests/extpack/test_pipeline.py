import asyncio
import tarfile
import threading
from pathlib import Path

import pytest

from extpack import pipeline as pipelineModule
from extpack.builder import PackageBuilder
from extpack.core.errors import ExtPackError, ParseError, VersionMismatchError
from extpack.pipeline import PipelineOptions, SelectionMode, runPipeline
from extpack.registry import Registry


THEME = '{"name": "T", "author": "Ada", "themes": [{"name": "T Dark", "appearance": "dark", "style": {}}]}'


class FakeVcs:
    """Serves a fixed baseline registry and materializes remote checkouts from a template directory."""

    def __init__(self, baseline: str = "", checkoutTemplate: Path | None = None):
        self.baseline = baseline
        self.checkoutTemplate = checkoutTemplate
        self.shown: list[tuple[str, str]] = []
        self.checkouts: list[tuple[str, str]] = []

    async def showFile(self, ref: str, path: str) -> bytes:
        self.shown.append((ref, path))
        return self.baseline.encode("utf-8")

    async def checkoutCommit(self, repositoryUrl: str, commitSha: str, destination: Path) -> Path:
        import shutil

        self.checkouts.append((repositoryUrl, commitSha))
        shutil.copytree(self.checkoutTemplate, destination)
        return destination


def writeExtension(root: Path, name: str, version: str, *, withTheme: bool = True) -> None:
    root.mkdir(parents=True, exist_ok=True)
    (root / "extension.toml").write_text(f'name = "{name}"\nversion = "{version}"\n', encoding="utf-8")
    if withTheme:
        (root / "themes").mkdir(exist_ok=True)
        (root / "themes" / f"{name.lower()}.json").write_text(THEME, encoding="utf-8")


def writeRegistry(root: Path, entries: dict[str, tuple[str, str]]) -> Path:
    lines = []
    for extensionId, (path, version) in entries.items():
        lines.append(f'[{extensionId}]\npath = "{path}"\nversion = "{version}"\n')
    registryPath = root / "extensions.toml"
    registryPath.write_text("\n".join(lines), encoding="utf-8")
    return registryPath


def makeOptions(tmp_path: Path, registryPath: Path, **kwargs) -> PipelineOptions:
    return PipelineOptions(
        registryPath=registryPath,
        buildRoot=tmp_path / "build",
        outputDir=tmp_path / "dist",
        **kwargs,
    )


@pytest.fixture()
def workspace(tmp_path):
    writeExtension(tmp_path / "exts" / "alpha", "Alpha", "1.0.0")
    writeExtension(tmp_path / "exts" / "beta", "Beta", "0.2.0")
    writeExtension(tmp_path / "exts" / "gamma", "Gamma", "0.1.0")
    registryPath = writeRegistry(tmp_path, {
        "alpha": ("exts/alpha", "1.0.0"),
        "beta": ("exts/beta", "0.2.0"),
        "gamma": ("exts/gamma", "0.1.0"),
    })
    return tmp_path, registryPath


BASELINE = """
[alpha]
path = "exts/alpha"
version = "1.0.0"

[beta]
path = "exts/beta"
version = "0.1.0"
"""


@pytest.mark.asyncio
async def test_changed_mode_packages_changed_and_new_extensions(workspace):
    tmp_path, registryPath = workspace
    vcs = FakeVcs(BASELINE)

    report = await runPipeline(makeOptions(tmp_path, registryPath, maxWorkers=2), vcs=vcs)

    assert report.selected == ["beta", "gamma"]
    assert [outcome.extensionId for outcome in report.outcomes] == ["beta", "gamma"]
    assert report.ok
    assert sorted(path.name for path in (tmp_path / "dist").iterdir()) == ["beta-0.2.0.tar.gz", "gamma-0.1.0.tar.gz"]
    assert vcs.shown == [("origin/main", registryPath.as_posix())]
    # Scratch space is gone once the run is over
    assert not (tmp_path / "build").exists()

    with tarfile.open(tmp_path / "dist" / "beta-0.2.0.tar.gz", "r:gz") as tar:
        assert sorted(tar.getnames()) == ["extension.json", "themes", "themes/beta.json"]


@pytest.mark.asyncio
async def test_failed_extension_does_not_stop_the_run(workspace):
    tmp_path, registryPath = workspace
    # Manifest now disagrees with the registry
    writeExtension(tmp_path / "exts" / "beta", "Beta", "0.3.0")

    report = await runPipeline(makeOptions(tmp_path, registryPath), vcs=FakeVcs(BASELINE))

    assert not report.ok
    assert [outcome.extensionId for outcome in report.failed] == ["beta"]
    assert isinstance(report.failed[0].error, VersionMismatchError)
    assert [outcome.extensionId for outcome in report.packaged] == ["gamma"]
    assert [path.name for path in (tmp_path / "dist").iterdir()] == ["gamma-0.1.0.tar.gz"]


@pytest.mark.asyncio
async def test_outcomes_follow_selection_order_even_when_builds_finish_out_of_order(workspace, monkeypatch):
    tmp_path, registryPath = workspace
    original = pipelineModule.packageExtension

    async def slowFirst(extensionId, entry, **kwargs):
        if extensionId == "alpha":
            await asyncio.sleep(0.05)
        return await original(extensionId, entry, **kwargs)

    monkeypatch.setattr(pipelineModule, "packageExtension", slowFirst)

    report = await runPipeline(makeOptions(tmp_path, registryPath, maxWorkers=3), vcs=FakeVcs(""))

    assert [outcome.extensionId for outcome in report.outcomes] == ["alpha", "beta", "gamma"]
    assert report.ok


@pytest.mark.asyncio
async def test_unpublished_mode_uses_published_versions(workspace):
    tmp_path, registryPath = workspace

    async def published():
        return {"alpha": {"1.0.0"}, "beta": {"0.1.0"}}

    report = await runPipeline(
        makeOptions(tmp_path, registryPath, mode=SelectionMode.UNPUBLISHED),
        vcs=FakeVcs(),
        publishedSource=published,
    )

    assert report.selected == ["beta", "gamma"]
    assert report.ok


@pytest.mark.asyncio
async def test_unpublished_mode_needs_an_index_url(workspace):
    tmp_path, registryPath = workspace
    with pytest.raises(ExtPackError):
        await runPipeline(makeOptions(tmp_path, registryPath, mode=SelectionMode.UNPUBLISHED), vcs=FakeVcs())


@pytest.mark.asyncio
async def test_selected_id_without_entry_is_skipped(workspace, monkeypatch):
    tmp_path, registryPath = workspace

    async def select(registry, options, *, vcs, publishedSource=None):
        return ["ghost", "gamma"]

    monkeypatch.setattr(pipelineModule, "selectExtensionIds", select)

    report = await runPipeline(makeOptions(tmp_path, registryPath), vcs=FakeVcs())

    assert [outcome.extensionId for outcome in report.skipped] == ["ghost"]
    assert [outcome.extensionId for outcome in report.packaged] == ["gamma"]
    assert report.ok


@pytest.mark.asyncio
async def test_remote_entry_is_built_from_checkout(tmp_path):
    template = tmp_path / "remote"
    writeExtension(template / "sub" / "remote-ext", "Remote", "2.0.0")
    registryPath = tmp_path / "extensions.toml"
    registryPath.write_text(
        '[remote-ext]\npath = "sub/remote-ext"\nversion = "2.0.0"\n'
        'repository = "https://example.com/exts.git"\nrev = "abc123"\n',
        encoding="utf-8",
    )
    vcs = FakeVcs("", checkoutTemplate=template)

    report = await runPipeline(makeOptions(tmp_path, registryPath), vcs=vcs)

    assert report.ok
    assert vcs.checkouts == [("https://example.com/exts.git", "abc123")]
    assert (tmp_path / "dist" / "remote-ext-2.0.0.tar.gz").is_file()


@pytest.mark.asyncio
async def test_keep_scratch_leaves_build_directories(workspace):
    tmp_path, registryPath = workspace

    report = await runPipeline(makeOptions(tmp_path, registryPath, keepScratch=True), vcs=FakeVcs(BASELINE))

    assert report.ok
    kept = sorted(path.name.split("-")[0] for path in (tmp_path / "build").iterdir())
    assert kept == ["beta", "gamma"]


@pytest.mark.asyncio
async def test_missing_registry_fails_the_run(tmp_path):
    with pytest.raises(ParseError):
        await runPipeline(makeOptions(tmp_path, tmp_path / "nope.toml"), vcs=FakeVcs())


def test_options_from_settings_apply_overrides(tmp_path):
    settingsPath = tmp_path / "extpack.json5"
    settingsPath.write_text('{build: {maxWorkers: 4}, output: {dir: "out"}}', encoding="utf-8")

    options = PipelineOptions.fromSettings(source=str(settingsPath), mode="unpublished", outputDir=None, maxWorkers=0)

    assert options.mode is SelectionMode.UNPUBLISHED
    assert options.outputDir == Path("out")
    # Zero workers is clamped to one
    assert options.maxWorkers == 1
    assert options.registryPath == Path("extensions.toml")


def test_registry_paths_resolve_against_registry_directory(workspace):
    tmp_path, registryPath = workspace
    registry = Registry.load(registryPath)
    assert registry.root == tmp_path


@pytest.mark.asyncio
async def test_pre_existing_build_root_keeps_unrelated_files(workspace):
    tmp_path, registryPath = workspace
    shared = tmp_path / "build"
    shared.mkdir()
    (shared / "precious.txt").write_text("keep me", encoding="utf-8")

    report = await runPipeline(makeOptions(tmp_path, registryPath), vcs=FakeVcs(BASELINE))

    assert report.ok
    assert [path.name for path in shared.iterdir()] == ["precious.txt"]


@pytest.mark.asyncio
async def test_unexpected_error_fails_only_that_extension(workspace, monkeypatch):
    tmp_path, registryPath = workspace
    original = pipelineModule.packageExtension

    async def explodeOnBeta(extensionId, entry, **kwargs):
        if extensionId == "beta":
            raise RuntimeError("unexpected")
        return await original(extensionId, entry, **kwargs)

    monkeypatch.setattr(pipelineModule, "packageExtension", explodeOnBeta)

    report = await runPipeline(makeOptions(tmp_path, registryPath, maxWorkers=3), vcs=FakeVcs(""))

    assert [outcome.extensionId for outcome in report.failed] == ["beta"]
    assert isinstance(report.failed[0].error, RuntimeError)
    assert [outcome.extensionId for outcome in report.packaged] == ["alpha", "gamma"]


@pytest.mark.asyncio
async def test_deeply_nested_theme_fails_only_that_extension(workspace):
    tmp_path, registryPath = workspace
    (tmp_path / "exts" / "beta" / "themes" / "deep.json").write_text("[" * 5000 + "]" * 5000, encoding="utf-8")

    report = await runPipeline(makeOptions(tmp_path, registryPath, maxWorkers=2), vcs=FakeVcs(""))

    assert [outcome.extensionId for outcome in report.failed] == ["beta"]
    assert [outcome.extensionId for outcome in report.packaged] == ["alpha", "gamma"]


def test_failed_copy_leaves_no_partial_file(tmp_path, monkeypatch):
    archive = tmp_path / "demo-0.1.0.tar.gz"
    archive.write_bytes(b"archive")
    outputDir = tmp_path / "dist"

    def failingCopy(source, target):
        Path(target).write_bytes(b"arch")
        raise OSError("disk full")

    monkeypatch.setattr(pipelineModule.shutil, "copyfile", failingCopy)

    with pytest.raises(OSError):
        pipelineModule._copyToOutput(archive, outputDir)
    assert list(outputDir.iterdir()) == []


@pytest.mark.asyncio
async def test_cancelling_a_run_cleans_scratch_and_keeps_finished_archives(workspace, monkeypatch):
    tmp_path, registryPath = workspace
    shared = tmp_path / "build"
    shared.mkdir()
    (shared / "precious.txt").write_text("keep me", encoding="utf-8")
    betaStarted = threading.Event()
    sawCancel: list[bool] = []

    class BlockingBuilder(PackageBuilder):
        def build(self, extensionId, *args):
            if extensionId == "beta":
                betaStarted.set()
                sawCancel.append(self.cancelEvent.wait(timeout=10))
            return super().build(extensionId, *args)

    async def select(registry, options, *, vcs, publishedSource=None):
        return ["alpha", "beta"]

    monkeypatch.setattr(pipelineModule, "PackageBuilder", BlockingBuilder)
    monkeypatch.setattr(pipelineModule, "selectExtensionIds", select)

    task = asyncio.create_task(runPipeline(makeOptions(tmp_path, registryPath, maxWorkers=2), vcs=FakeVcs()))
    finished = tmp_path / "dist" / "alpha-1.0.0.tar.gz"
    for _ in range(500):
        if betaStarted.is_set() and finished.exists():
            break
        await asyncio.sleep(0.01)
    assert betaStarted.is_set() and finished.exists()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # The blocked build was told to stop rather than timing out
    assert sawCancel == [True]
    assert finished.is_file()
    assert not (tmp_path / "dist" / "beta-0.2.0.tar.gz").exists()
    assert [path.name for path in shared.iterdir()] == ["precious.txt"]
