"""
Artifact locators: small functions that tell a stage where a file is.

Stages are configured with locators rather than subclassed. A locator takes
the world snapshot (plus the unit being considered) and returns an
``Artifact``. Locators must be deterministic.
"""

from typing import TYPE_CHECKING, Callable, Tuple

from ..file_types import DerivedFileType, Source
from ..manifest import Case
from ..pipeline_core.artifacts import Artifact, DownloadableArtifact

if TYPE_CHECKING:
    from ..pipeline_core.world import WorldSnapshot

CaseLocator = Callable[["WorldSnapshot", Case], Artifact]
DownloadLocator = Callable[["WorldSnapshot", Case], DownloadableArtifact]
OneOffLocator = Callable[["WorldSnapshot"], Artifact]
DiseaseLocator = Callable[["WorldSnapshot", str], Artifact]
ChromosomeDiseaseLocator = Callable[["WorldSnapshot", Tuple[str, str]], Artifact]
TokenFormatter = Callable[["WorldSnapshot", Case], str]


def derived(file_type: DerivedFileType) -> CaseLocator:
    """A derived file of the case; not applicable if the case lacks its source."""

    def locate(world: "WorldSnapshot", case: Case) -> Artifact:
        return world.case_artifact(case, file_type)

    locate.__name__ = f"derived_{file_type.name.lower()}"
    return locate


def downloaded(source: Source) -> DownloadLocator:
    """The downloaded data file of one of the case's sources."""

    def locate(world: "WorldSnapshot", case: Case) -> DownloadableArtifact:
        return world.downloadable(case, source)

    locate.__name__ = f"downloaded_{source.value}"
    return locate


def final_result(filename: str) -> OneOffLocator:
    """A global file in the final results directory."""

    def locate(world: "WorldSnapshot") -> Artifact:
        return world.one_off(world.config.final_result(filename))

    locate.__name__ = f"final_result_{filename}"
    return locate


def cases_file(world: "WorldSnapshot") -> Artifact:
    """The cases manifest named by the configuration."""
    return world.one_off(world.config.cases_file)


def expression_file() -> DiseaseLocator:
    """The indexed ``expression_<disease>`` file."""

    def locate(world: "WorldSnapshot", disease: str) -> Artifact:
        return world.expression_file(disease)

    return locate


def expression_distribution() -> ChromosomeDiseaseLocator:
    """The indexed ``expression_distribution_<chromosome>_<disease>`` file."""

    def locate(world: "WorldSnapshot", unit: Tuple[str, str]) -> Artifact:
        chromosome, disease = unit
        return world.expression_distribution_file(chromosome, disease)

    return locate


def scatter_graph_lines(template: str) -> ChromosomeDiseaseLocator:
    """A per chromosome and disease file in the gene scatter graphs directory."""

    def locate(world: "WorldSnapshot", unit: Tuple[str, str]) -> Artifact:
        chromosome, disease = unit
        name = template.format(chromosome=chromosome, disease=disease)
        return world.one_off(world.config.gene_scatter_graphs_directory / name)

    return locate


def case_id_token(world: "WorldSnapshot", case: Case) -> str:
    return case.case_id


def case_and_output_token(file_type: DerivedFileType) -> TokenFormatter:
    """Token of the form ``<case_id> <expected output path>``."""

    def token(world: "WorldSnapshot", case: Case) -> str:
        return f"{case.case_id} {world.expected_derived_path(case, file_type)}"

    return token


def disease_expression_file(world: "WorldSnapshot", case: Case) -> Artifact:
    """The expression file of the case's disease, used as a per-case input."""
    return world.expression_file(case.disease)
