"""
The ordered stage list.

Order matters: each run is a single forward pass, so a stage placed after
its prerequisites can pick up their outputs on the next run at the latest.
Stages are never sorted; the list is maintained by hand.
"""

import logging
from typing import List

from ..file_types import DerivedFileType as T
from ..file_types import Source
from ..pipeline_core.batcher import CLOUD, CLUSTER, LOCAL, UNIX
from ..pipeline_core.stage import Stage
from .locators import (
    case_and_output_token,
    cases_file,
    derived,
    disease_expression_file,
    downloaded,
    expression_distribution,
    expression_file,
    final_result,
    scatter_graph_lines,
)
from .shapes import PerCaseStage, PerChromosomeDiseaseStage, PerDiseaseStage, SingleOutputStage
from .special_stages import DownloadStage, MD5ComputationStage

logger = logging.getLogger(__name__)

MAF_FILE_LIST = "maf_file_list.txt"
ISOFORM_FILE = "isoforms.txt"
ASE_CORRECTION = "ase_correction.txt"
ASE_MAP = "ASEMap.txt"
ASE_DIFFERENCE_MAP = "ASEDifferenceMap.txt"
MANN_WHITNEY = "MannWhitney.txt"
CONSOLIDATED_CASE_METADATA = "CaseMetadata.txt"
PHASING_SUMMARY = "PhasingSummary.txt"
SCATTER_GRAPH_TEMPLATE = "{chromosome}_{disease}_with_percentiles.txt"

ALL_TARGETS = (LOCAL, CLUSTER, UNIX, CLOUD)

ALLCOUNT_TYPES = {
    Source.TUMOR_DNA: T.TUMOR_DNA_ALLCOUNT,
    Source.NORMAL_DNA: T.NORMAL_DNA_ALLCOUNT,
    Source.TUMOR_RNA: T.TUMOR_RNA_ALLCOUNT,
    Source.NORMAL_RNA: T.NORMAL_RNA_ALLCOUNT,
}

READS_AT_SELECTED_VARIANTS_TYPES = {
    Source.TUMOR_DNA: T.TUMOR_DNA_READS_AT_SELECTED_VARIANTS,
    Source.NORMAL_DNA: T.NORMAL_DNA_READS_AT_SELECTED_VARIANTS,
    Source.TUMOR_RNA: T.TUMOR_RNA_READS_AT_SELECTED_VARIANTS,
    Source.NORMAL_RNA: T.NORMAL_RNA_READS_AT_SELECTED_VARIANTS,
}

MAPPED_BASE_COUNT_TYPES = {
    Source.TUMOR_DNA: T.TUMOR_DNA_MAPPED_BASE_COUNT,
    Source.NORMAL_DNA: T.NORMAL_DNA_MAPPED_BASE_COUNT,
    Source.TUMOR_RNA: T.TUMOR_RNA_MAPPED_BASE_COUNT,
    Source.NORMAL_RNA: T.NORMAL_RNA_MAPPED_BASE_COUNT,
}


def build_stage_list() -> List[Stage]:
    """Return a fresh instance of every stage, in evaluation order."""
    stages: List[Stage] = [
        SingleOutputStage(
            "Generate MAF Configuration",
            "GenerateMAFConfiguration",
            outputs=[final_result(MAF_FILE_LIST)],
            targets=(LOCAL,),
            needs_entities=False,
            verify_freshness=False,
        ),
        SingleOutputStage(
            "Generate Cases",
            "GenerateCases",
            outputs=[cases_file],
            one_off_inputs=[final_result(MAF_FILE_LIST)],
            targets=(LOCAL,),
            needs_entities=False,
            verify_freshness=False,
        ),
        DownloadStage(),
        MD5ComputationStage(),
    ]

    for source, allcount in ALLCOUNT_TYPES.items():
        stages.append(
            PerCaseStage(
                f"Allcount ({source.label})",
                "GenerateAllcount",
                outputs=[derived(allcount)],
                downloadable_inputs=[downloaded(source)],
                arguments=source.value,
            )
        )

    stages.extend(
        [
            PerCaseStage(
                "Germline Variant Calling",
                "GermlineVariantCalling",
                outputs=[derived(T.VCF)],
                downloadable_inputs=[downloaded(Source.NORMAL_DNA)],
                targets=ALL_TARGETS,
            ),
            PerCaseStage(
                "VCF Statistics",
                "ComputeVCFStatistics",
                outputs=[derived(T.VCF_STATISTICS)],
                case_inputs=[derived(T.VCF)],
            ),
            PerCaseStage(
                "Select Variants",
                "SelectGermlineVariants",
                outputs=[derived(T.SELECTED_VARIANTS)],
                case_inputs=[
                    derived(T.VCF),
                    derived(T.TUMOR_DNA_ALLCOUNT),
                    derived(T.NORMAL_DNA_ALLCOUNT),
                    derived(T.TUMOR_RNA_ALLCOUNT),
                ],
            ),
            PerCaseStage(
                "Extract MAF Lines",
                "ExtractMAFLines",
                outputs=[derived(T.EXTRACTED_MAF_LINES)],
                one_off_inputs=[final_result(MAF_FILE_LIST)],
            ),
        ]
    )

    for source, reads in READS_AT_SELECTED_VARIANTS_TYPES.items():
        stages.append(
            PerCaseStage(
                f"Extract Reads ({source.label})",
                "ExtractReadsAtSelectedVariants",
                outputs=[derived(reads)],
                case_inputs=[derived(T.SELECTED_VARIANTS), derived(T.EXTRACTED_MAF_LINES)],
                downloadable_inputs=[downloaded(source)],
                arguments=source.value,
                token=case_and_output_token(reads),
            )
        )

    stages.append(
        PerCaseStage(
            "Annotate Variants",
            "AnnotateVariants",
            outputs=[derived(T.ANNOTATED_SELECTED_VARIANTS)],
            case_inputs=[derived(T.SELECTED_VARIANTS)]
            + [derived(t) for t in READS_AT_SELECTED_VARIANTS_TYPES.values()],
        )
    )

    for source, mapped in MAPPED_BASE_COUNT_TYPES.items():
        stages.append(
            PerCaseStage(
                f"Count Mapped Bases ({source.label})",
                "CountMappedBases",
                outputs=[derived(mapped)],
                downloadable_inputs=[downloaded(source)],
                arguments=source.value,
            )
        )

    tumor_rna_expression_inputs = [derived(T.TUMOR_RNA_ALLCOUNT), derived(T.TUMOR_RNA_MAPPED_BASE_COUNT)]
    stages.extend(
        [
            PerDiseaseStage(
                "Expression Distribution",
                "ExpressionDistribution",
                outputs=[expression_file()],
                case_inputs=tumor_rna_expression_inputs,
            ),
            PerChromosomeDiseaseStage(
                "Expression Distribution by Chromosome",
                "ExpressionDistributionByChromosome",
                outputs=[expression_distribution()],
                case_inputs=tumor_rna_expression_inputs,
            ),
            PerCaseStage(
                "Regional Expression",
                "RegionalExpression",
                outputs=[derived(T.REGIONAL_EXPRESSION)],
                case_inputs=tumor_rna_expression_inputs + [disease_expression_file],
            ),
            PerCaseStage(
                "Gene Expression",
                "ExpressionNearMutations",
                outputs=[derived(T.GENE_EXPRESSION)],
                case_inputs=[derived(T.REGIONAL_EXPRESSION), derived(T.ANNOTATED_SELECTED_VARIANTS)],
            ),
            PerChromosomeDiseaseStage(
                "Add Percentiles to Scatter Graphs",
                "AddPercentilesToScatterGraph",
                outputs=[scatter_graph_lines(SCATTER_GRAPH_TEMPLATE)],
                unit_inputs=[expression_distribution()],
                case_inputs=[derived(T.GENE_EXPRESSION)],
            ),
            SingleOutputStage(
                "ASE Correction",
                "ComputeASECorrection",
                outputs=[final_result(ASE_CORRECTION)],
                case_inputs=[derived(T.ANNOTATED_SELECTED_VARIANTS)],
            ),
            PerCaseStage(
                "Corrected ASE",
                "CorrectASE",
                outputs=[derived(T.CORRECTED_ASE)],
                case_inputs=[derived(T.ANNOTATED_SELECTED_VARIANTS)],
                needs_common_data=True,
            ),
            SingleOutputStage(
                "ASE Map",
                "aseflow-asemap",
                outputs=[final_result(ASE_MAP), final_result(ASE_DIFFERENCE_MAP)],
                case_inputs=[derived(T.ANNOTATED_SELECTED_VARIANTS)],
                needs_common_data=True,
                targets=(LOCAL, UNIX),
            ),
            SingleOutputStage(
                "Mann-Whitney",
                "MannWhitney",
                outputs=[final_result(MANN_WHITNEY)],
                case_inputs=[derived(T.GENE_EXPRESSION)],
            ),
            PerCaseStage(
                "Case Metadata",
                "GenerateCaseMetadata",
                outputs=[derived(T.CASE_METADATA)],
                case_inputs=[derived(t) for t in ALLCOUNT_TYPES.values()],
            ),
            SingleOutputStage(
                "Consolidate Case Metadata",
                "ConsolidateCaseMetadata",
                outputs=[final_result(CONSOLIDATED_CASE_METADATA)],
                case_inputs=[derived(T.CASE_METADATA)],
            ),
            PerCaseStage(
                "Read Statistics",
                "ComputeReadStatistics",
                outputs=[derived(T.READ_STATISTICS)],
                downloadable_inputs=[downloaded(s) for s in Source],
            ),
            PerCaseStage(
                "Isoform Read Counts",
                "CountReadsPerIsoform",
                outputs=[derived(T.ISOFORM_READ_COUNTS)],
                downloadable_inputs=[downloaded(Source.TUMOR_RNA)],
                one_off_inputs=[final_result(ISOFORM_FILE)],
            ),
            PerCaseStage(
                "Distance Between Mutations",
                "DistanceBetweenMutations",
                outputs=[derived(T.MUTATION_DISTANCES)],
                case_inputs=[derived(T.EXTRACTED_MAF_LINES), derived(T.ANNOTATED_SELECTED_VARIANTS)],
            ),
            PerCaseStage(
                "Uniparental Disomy",
                "UniparentalDisomy",
                outputs=[derived(T.UNIPARENTAL_DISOMY)],
                case_inputs=[derived(T.ANNOTATED_SELECTED_VARIANTS)],
            ),
            PerCaseStage(
                "Variant Phasing",
                "PhaseVariants",
                outputs=[derived(T.VARIANT_PHASING)],
                case_inputs=[
                    derived(T.ANNOTATED_SELECTED_VARIANTS),
                    derived(T.TUMOR_RNA_READS_AT_SELECTED_VARIANTS),
                ],
            ),
            SingleOutputStage(
                "Summarize Phasing",
                "SummarizePhasing",
                outputs=[final_result(PHASING_SUMMARY)],
                case_inputs=[derived(T.VARIANT_PHASING)],
            ),
        ]
    )

    names = [stage.name for stage in stages]
    duplicates = {n for n in names if names.count(n) > 1}
    if duplicates:
        raise ValueError(f"Duplicate stage names in catalog: {sorted(duplicates)}")

    logger.debug(f"Stage catalog holds {len(stages)} stages")
    return stages
