"""The three-phase detectable contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from depdetect.detectable.environment import (
    DetectableContext,
    DetectableEnvironment,
    ExtractionEnvironment,
)
from depdetect.detectable.result import DetectableResult, Extraction
from depdetect.executable import ExecutableResolver, ExecutableRunner
from depdetect.graph import ExternalIdFactory


class Detectable(ABC):
    """Decide whether and how to extract a dependency graph from one directory.

    Implementations are stateless: everything found by one phase is written
    to the :class:`DetectableContext` passed to the next, so one instance can
    evaluate many directories concurrently.
    """

    @abstractmethod
    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        """Check for the marker files or directories of this ecosystem.

        Only file and directory existence may be inspected here.
        """
        ...

    @abstractmethod
    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        """Check optional inputs and required tools before committing to extract."""
        ...

    @abstractmethod
    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        """Parse files and/or run tools and build the dependency graph.

        Recoverable I/O, parse and subprocess errors are returned as a failed
        :class:`Extraction`, never raised.
        """
        ...


@dataclass
class DetectableServices:
    """Collaborators handed to every detectable constructor."""

    runner: ExecutableRunner = field(default_factory=ExecutableRunner)
    resolver: ExecutableResolver = field(default_factory=ExecutableResolver)
    external_id_factory: ExternalIdFactory = field(default_factory=ExternalIdFactory)
