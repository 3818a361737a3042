"""External identifiers: the canonical (forge, name, version) key of a dependency."""

import re
from enum import Enum
from urllib.parse import quote

from packageurl import PackageURL
from pydantic import BaseModel, ConfigDict, Field


class Forge(str, Enum):
    """Namespaces identifying the origin ecosystem of a dependency."""

    PYPI = "pypi"
    NPMJS = "npmjs"
    MAVEN = "maven"
    GITHUB = "github"
    CONAN = "conan"
    COCOAPODS = "cocoapods"
    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    CENTOS = "centos"
    ALPINE = "alpine"
    RUBYGEMS = "rubygems"
    CARGO = "crates"

    @property
    def separator(self) -> str:
        """Separator used between identifier pieces for this forge."""
        return _SEPARATORS.get(self, "/")

    @property
    def purl_type(self) -> str:
        """Package URL type for this forge."""
        return _PURL_TYPES.get(self, self.value)


_SEPARATORS: dict[Forge, str] = {
    Forge.MAVEN: ":",
    Forge.GITHUB: ":",
}

_PURL_TYPES: dict[Forge, str] = {
    Forge.NPMJS: "npm",
    Forge.DEBIAN: "deb",
    Forge.UBUNTU: "deb",
    Forge.CENTOS: "rpm",
    Forge.ALPINE: "apk",
    Forge.RUBYGEMS: "gem",
    Forge.CARGO: "cargo",
}

_PURL_NAMESPACES: dict[Forge, str] = {
    Forge.DEBIAN: "debian",
    Forge.UBUNTU: "ubuntu",
    Forge.CENTOS: "centos",
    Forge.ALPINE: "alpine",
}


class ExternalId(BaseModel):
    """Immutable identifier of a dependency node.

    Two ids are the same node exactly when all of their fields are equal.
    """

    model_config = ConfigDict(frozen=True)

    forge: Forge
    name: str = Field(..., min_length=1)
    version: str | None = None
    group: str | None = None
    architecture: str | None = None

    def pieces(self) -> list[str]:
        """Return the non-empty identifier pieces in rendering order."""
        pieces = [self.group, self.name, self.version, self.architecture]
        return [piece for piece in pieces if piece]

    def create_external_id(self) -> str:
        """Render the identifier as ``piece<sep>piece`` for this forge."""
        return self.forge.separator.join(self.pieces())

    def create_bdio_id(self) -> str:
        """Render a stable URI usable as a node id in BDIO documents."""
        encoded = "/".join(_quote(piece) for piece in self.pieces())
        return f"http:{self.forge.value}/{encoded}"

    def to_purl(self) -> str:
        """Render the identifier as a package URL.

        A ``/`` in the name of an id without group separates the namespace,
        so ``@babel/core`` renders as ``pkg:npm/%40babel/core``.
        """
        namespace, name = self.group, self.name
        if namespace is None and "/" in name:
            namespace, name = name.rsplit("/", 1)
            if self.forge == Forge.GITHUB:
                namespace = namespace.removeprefix("github.com/")
        return PackageURL(
            type=self.forge.purl_type,
            namespace=namespace or _PURL_NAMESPACES.get(self.forge),
            name=name,
            version=self.version,
            qualifiers={"arch": self.architecture} if self.architecture else None,
        ).to_string()

    def __str__(self) -> str:
        return f"{self.forge.value}{self.forge.separator}{self.create_external_id()}"


class Dependency(BaseModel):
    """A node in a dependency graph, identified by its external id."""

    model_config = ConfigDict(frozen=True)

    external_id: ExternalId
    name: str
    version: str | None = None

    @classmethod
    def from_external_id(cls, external_id: ExternalId) -> "Dependency":
        """Create a dependency whose display name and version follow the id."""
        return cls(
            external_id=external_id,
            name=external_id.name,
            version=external_id.version,
        )


def _quote(piece: str) -> str:
    return quote(piece, safe=":+~")


_PYPI_NAME_SEPARATORS = re.compile(r"[-_.]+")


class ExternalIdFactory:
    """Normalize forge + name (+ version) into canonical external ids.

    Names are stripped of surrounding whitespace; PyPI names are additionally
    normalized the way the index compares them (lowercase, runs of ``-_.``
    collapsed to ``-``). Blank versions become ``None``. Dependencies built
    here keep the declared name for display.
    """

    def create_name_version_external_id(
        self,
        forge: Forge,
        name: str,
        version: str | None = None,
    ) -> ExternalId:
        return ExternalId(
            forge=forge,
            name=self.normalize_name(forge, name),
            version=_clean(version),
        )

    def create_maven_external_id(
        self,
        group: str,
        name: str,
        version: str | None = None,
    ) -> ExternalId:
        return ExternalId(
            forge=Forge.MAVEN,
            group=_clean(group),
            name=name.strip(),
            version=_clean(version),
        )

    def create_architecture_external_id(
        self,
        forge: Forge,
        name: str,
        version: str | None,
        architecture: str | None,
    ) -> ExternalId:
        return ExternalId(
            forge=forge,
            name=name.strip(),
            version=_clean(version),
            architecture=_clean(architecture),
        )

    def create_dependency(
        self,
        forge: Forge,
        name: str,
        version: str | None = None,
    ) -> Dependency:
        """Shortcut for a name/version id wrapped in a :class:`Dependency`.

        The dependency keeps *name* as given; only its external id carries
        the normalized name.
        """
        external_id = self.create_name_version_external_id(forge, name, version)
        return Dependency(
            external_id=external_id,
            name=name.strip(),
            version=external_id.version,
        )

    @staticmethod
    def normalize_name(forge: Forge, name: str) -> str:
        name = name.strip()
        if forge == Forge.PYPI:
            return _PYPI_NAME_SEPARATORS.sub("-", name).lower()
        return name


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None
