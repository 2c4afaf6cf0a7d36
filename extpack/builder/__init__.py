# extpack/builder/__init__.py
from .archive import createTarGz
from .package import BuildResult, PackageBuilder, archiveName, buildPackage
from .scratch import ScratchRoot

__all__ = [
    "BuildResult",
    "PackageBuilder",
    "ScratchRoot",
    "archiveName",
    "buildPackage",
    "createTarGz",
]
