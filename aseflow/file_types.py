# File: aseflow/file_types.py
# Location: aseflow/aseflow/file_types.py

"""
Sequencing sources, derived-file types and the chromosome enumeration.

A derived file lives at ``<derived_files>/<case_id>/<source_file_id><extension>``.
The extension identifies its type, and the type names the sequencing source
whose remote file id forms the rest of the file name.
"""

from enum import Enum
from typing import Optional, Tuple

GUID_LENGTH = 36

CHROMOSOMES: Tuple[str, ...] = tuple([f"chr{i}" for i in range(1, 23)] + ["chrX", "chrY"])


def chromosome_index(chromosome: str) -> int:
    """Return the 1-based position of a chromosome (chrX is 23, chrY is 24)."""
    name = chromosome.lower()
    if not name.startswith("chr"):
        name = "chr" + name
    for i, known in enumerate(CHROMOSOMES, start=1):
        if known.lower() == name:
            return i
    raise ValueError(f"Unknown chromosome: {chromosome}")


def normalize_chromosome(chromosome: str) -> Optional[str]:
    """Map ``1``, ``chr1`` or ``CHR1`` onto the canonical name, or None if unknown."""
    try:
        return CHROMOSOMES[chromosome_index(chromosome) - 1]
    except ValueError:
        return None


class Source(Enum):
    """The four sequencing sources of a case."""

    TUMOR_DNA = "tumor_dna"
    NORMAL_DNA = "normal_dna"
    TUMOR_RNA = "tumor_rna"
    NORMAL_RNA = "normal_rna"

    @property
    def label(self) -> str:
        """Human readable label, e.g. ``tumor DNA``."""
        tissue, kind = self.value.split("_")
        return f"{tissue} {kind.upper()}"


class DerivedFileType(Enum):
    """Every kind of file the pipeline derives from a case's downloaded data."""

    TUMOR_DNA_ALLCOUNT = (".tumor-dna.allcount.gz", Source.TUMOR_DNA)
    NORMAL_DNA_ALLCOUNT = (".normal-dna.allcount.gz", Source.NORMAL_DNA)
    TUMOR_RNA_ALLCOUNT = (".tumor-rna.allcount.gz", Source.TUMOR_RNA)
    NORMAL_RNA_ALLCOUNT = (".normal-rna.allcount.gz", Source.NORMAL_RNA)
    VCF = (".vcf", Source.NORMAL_DNA)
    VCF_STATISTICS = (".vcf_statistics.txt", Source.NORMAL_DNA)
    SELECTED_VARIANTS = (".selectedVariants", Source.NORMAL_DNA)
    EXTRACTED_MAF_LINES = (".extracted_maf_lines.txt", Source.TUMOR_DNA)
    TUMOR_DNA_READS_AT_SELECTED_VARIANTS = (
        ".tumor-dna-reads-at-selected-variants.txt",
        Source.TUMOR_DNA,
    )
    NORMAL_DNA_READS_AT_SELECTED_VARIANTS = (
        ".normal-dna-reads-at-selected-variants.txt",
        Source.NORMAL_DNA,
    )
    TUMOR_RNA_READS_AT_SELECTED_VARIANTS = (
        ".tumor-rna-reads-at-selected-variants.txt",
        Source.TUMOR_RNA,
    )
    NORMAL_RNA_READS_AT_SELECTED_VARIANTS = (
        ".normal-rna-reads-at-selected-variants.txt",
        Source.NORMAL_RNA,
    )
    ANNOTATED_SELECTED_VARIANTS = (".annotatedSelectedVariants", Source.NORMAL_DNA)
    TUMOR_DNA_MAPPED_BASE_COUNT = (".tumor-dna.mapped_base_count.txt", Source.TUMOR_DNA)
    NORMAL_DNA_MAPPED_BASE_COUNT = (".normal-dna.mapped_base_count.txt", Source.NORMAL_DNA)
    TUMOR_RNA_MAPPED_BASE_COUNT = (".tumor-rna.mapped_base_count.txt", Source.TUMOR_RNA)
    NORMAL_RNA_MAPPED_BASE_COUNT = (".normal-rna.mapped_base_count.txt", Source.NORMAL_RNA)
    REGIONAL_EXPRESSION = (".regional_expression.txt", Source.TUMOR_RNA)
    GENE_EXPRESSION = (".gene_expression.txt", Source.TUMOR_RNA)
    CORRECTED_ASE = (".corrected_ase.txt", Source.NORMAL_DNA)
    CASE_METADATA = (".case_metadata.txt", Source.NORMAL_DNA)
    READ_STATISTICS = (".read_statistics.txt", Source.NORMAL_DNA)
    ISOFORM_READ_COUNTS = (".isoform_read_counts.txt", Source.TUMOR_RNA)
    MUTATION_DISTANCES = (".distance_between_mutations.txt", Source.TUMOR_DNA)
    UNIPARENTAL_DISOMY = (".uniparental_disomy.txt", Source.NORMAL_DNA)
    VARIANT_PHASING = (".variant_phasing.txt", Source.NORMAL_DNA)

    def __init__(self, extension: str, source: Source):
        self.extension = extension
        self.source = source

    def filename(self, source_file_id: str) -> str:
        """Return the derived file name for a given source file id."""
        return f"{source_file_id}{self.extension}"

    @classmethod
    def match(cls, filename: str) -> Optional[Tuple["DerivedFileType", str]]:
        """Split a derived file name into its type and source file id.

        The longest matching extension wins, so ``x.vcf_statistics.txt`` is
        never taken for a VCF.

        Returns
        -------
        tuple or None
            ``(type, source_file_id)``, or None when no known extension matches.
        """
        for file_type in sorted(cls, key=lambda t: len(t.extension), reverse=True):
            if filename.endswith(file_type.extension) and len(filename) > len(file_type.extension):
                return file_type, filename[: -len(file_type.extension)]
        return None
