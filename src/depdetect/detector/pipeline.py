"""The detector pipeline: search, evaluate, assemble."""

import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from depdetect.detectable import DetectableEnvironment, DetectableServices
from depdetect.detector.code_location import CodeLocationAssembler, NamedCodeLocation
from depdetect.detector.evaluator import DetectorEvaluation, DetectorEvaluator
from depdetect.detector.report import DetectorReport
from depdetect.detector.rules import DetectableOptions, DetectorGroup, DetectorRule
from depdetect.detector.search import DirectorySearch, SearchedDirectory
from depdetect.errors import ScanError
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PROJECT_VERSION = "default"


@dataclass
class DetectorToolResult:
    """Everything one pipeline run produced."""

    source_path: Path
    project_name: str
    project_version: str
    evaluations: list[DetectorEvaluation] = field(default_factory=list)
    code_locations: list[NamedCodeLocation] = field(default_factory=list)
    applicable_groups: set[DetectorGroup] = field(default_factory=set)
    report: DetectorReport = field(default_factory=DetectorReport)
    failed_directories: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def extracted(self) -> list[DetectorEvaluation]:
        return [evaluation for evaluation in self.evaluations if evaluation.is_extracted]


class DetectorPipeline:
    """Evaluate every rule against every searched directory.

    Directories at the same depth run concurrently; depths run in order so
    that nesting decisions can see what extracted in ancestor directories.
    Each extraction owns its graph and the graphs are merged into code
    locations only after every directory finished.
    """

    def __init__(
        self,
        rules: list[DetectorRule],
        services: DetectableServices | None = None,
        options: DetectableOptions | None = None,
        search: DirectorySearch | None = None,
        parallel_workers: int | None = None,
        assembler: CodeLocationAssembler | None = None,
        project_name: str | None = None,
        project_version: str | None = None,
        scratch_parent: Path | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            rules: Detector rules to evaluate.
            services: Runner, resolver and id factory for the detectables.
            options: Options passed to every detectable constructor.
            search: Directory search; defaults to depth 3 with default excludes.
            parallel_workers: Thread pool size; defaults to the CPU count.
            assembler: Code location assembler.
            project_name: Overrides the name found by the detectors.
            project_version: Overrides the version found by the detectors.
            scratch_parent: Where scratch directories are created.
        """
        self.services = services or DetectableServices()
        self.evaluator = DetectorEvaluator(rules, self.services, options)
        self.search = search or DirectorySearch()
        self.parallel_workers = max(1, parallel_workers or os.cpu_count() or 1)
        self.assembler = assembler or CodeLocationAssembler()
        self.project_name = project_name
        self.project_version = project_version
        self.scratch_parent = scratch_parent
        self._cancelled = False

    def cancel(self) -> None:
        """Stop evaluating new directories and terminate running tools."""
        logger.info("Cancelling scan")
        self._cancelled = True
        self.services.runner.cancel()

    def run(self, source_path: str | Path) -> DetectorToolResult:
        """Scan *source_path*.

        An interrupt raised while waiting for a level, such as
        ``KeyboardInterrupt``, drops the queued directories and terminates
        running tools before it propagates.

        Raises:
            ScanError: If the source path is not a directory.
        """
        source = Path(source_path).resolve()
        if not source.is_dir():
            raise ScanError(
                f"Source path is not a directory: {source}",
                hint="Pass the root directory of the project to scan.",
            )

        levels = self.search.levels(source)
        logger.info(
            "Evaluating %d directories under %s",
            sum(len(level) for level in levels),
            source,
        )

        evaluations: list[DetectorEvaluation] = []
        extracted_groups: dict[Path, set[DetectorGroup]] = {}
        failed_directories: dict[str, str] = {}

        if self.scratch_parent is not None:
            self.scratch_parent.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="depdetect-", dir=self.scratch_parent) as scratch:
            with ThreadPoolExecutor(max_workers=self.parallel_workers) as executor:
                try:
                    for level in levels:
                        if self._cancelled:
                            break
                        futures = [
                            (
                                environment,
                                executor.submit(
                                    self.evaluator.evaluate,
                                    environment,
                                    Path(scratch),
                                    _ancestor_groups(environment.directory, extracted_groups),
                                ),
                            )
                            for environment in (self._environment(directory, source) for directory in level)
                        ]
                        for environment, future in futures:
                            try:
                                directory_evaluation = future.result()
                            except Exception as e:
                                logger.error("Scan of %s aborted: %s", environment.directory, e)
                                failed_directories[str(environment.directory)] = str(e)
                                directory_evaluation = self.evaluator.failed(environment, e)
                            extracted_groups[environment.directory] = directory_evaluation.extracted_groups()
                            evaluations.extend(directory_evaluation.evaluations)
                except BaseException:
                    # Drop queued directories before terminating the running tools
                    executor.shutdown(wait=False, cancel_futures=True)
                    self.cancel()
                    raise

        project_name, project_version = self._project_info(source, evaluations)
        code_locations = self.assembler.assemble(evaluations, source, project_name, project_version)
        report = DetectorReport.from_evaluations(evaluations)
        report.log_summary()

        return DetectorToolResult(
            source_path=source,
            project_name=project_name,
            project_version=project_version,
            evaluations=evaluations,
            code_locations=code_locations,
            applicable_groups={e.rule.group for e in evaluations if e.is_applicable},
            report=report,
            failed_directories=failed_directories,
            cancelled=self._cancelled,
        )

    def _environment(self, directory: SearchedDirectory, root: Path) -> DetectableEnvironment:
        return DetectableEnvironment(
            directory=directory.path,
            root_directory=root,
            depth=directory.depth,
            exclude_patterns=tuple(self.search.exclude_patterns),
        )

    def _project_info(
        self, source: Path, evaluations: list[DetectorEvaluation]
    ) -> tuple[str, str]:
        name = self.project_name
        version = self.project_version
        for evaluation in evaluations:
            if not evaluation.is_extracted or evaluation.extraction is None:
                continue
            name = name or evaluation.extraction.project_name
            version = version or evaluation.extraction.project_version
            if name and version:
                break
        return name or source.name, version or DEFAULT_PROJECT_VERSION


def _ancestor_groups(
    directory: Path, extracted_groups: dict[Path, set[DetectorGroup]]
) -> set[DetectorGroup]:
    groups: set[DetectorGroup] = set()
    for parent in directory.parents:
        groups |= extracted_groups.get(parent, set())
    return groups
