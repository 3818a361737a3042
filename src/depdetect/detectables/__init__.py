"""Ecosystem detectables."""

from depdetect.detectables.clang import ClangCompileCommandsDetectable, DependencyFileParser
from depdetect.detectables.conan import ConanfileTxtDetectable, ConanLockDetectable
from depdetect.detectables.maven import MavenCliDetectable, MavenPomParseDetectable
from depdetect.detectables.npm import NpmPackageJsonDetectable, NpmPackageLockDetectable
from depdetect.detectables.pip import PipfileLockDetectable, PipRequirementsDetectable
from depdetect.detectables.setuptools import SetupToolsDetectable
from depdetect.detectables.swift import PackageResolvedExtractor, SwiftPackageResolvedDetectable
from depdetect.detectables.xcode import XcodeProjectDetectable

__all__ = [
    "ClangCompileCommandsDetectable",
    "ConanLockDetectable",
    "ConanfileTxtDetectable",
    "DependencyFileParser",
    "MavenCliDetectable",
    "MavenPomParseDetectable",
    "NpmPackageJsonDetectable",
    "NpmPackageLockDetectable",
    "PackageResolvedExtractor",
    "PipRequirementsDetectable",
    "PipfileLockDetectable",
    "SetupToolsDetectable",
    "SwiftPackageResolvedDetectable",
    "XcodeProjectDetectable",
]
