"""Shared data types for the diagnosis consensus pipeline."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

# Source ids
IDENTIFIER = "identifier"
HEALTH_ASSESSOR = "health_assessor"
PATHOGEN_REGISTRY = "pathogen_registry"
VISION_NARRATOR = "vision_narrator"
FALLBACK_IDENTIFIER = "fallback_identifier"

# Identification tie-break order, highest priority first
IDENTIFICATION_PRIORITY = (IDENTIFIER, VISION_NARRATOR, FALLBACK_IDENTIFIER)


class TreatmentKind(Enum):
    """When a treatment action applies."""

    IMMEDIATE = "immediate"
    ONGOING = "ongoing"
    PREVENTIVE = "preventive"


@dataclass(frozen=True)
class VisualSymptom:
    """Normalized symptom tag with the text it was extracted from."""

    tag: str
    evidence: str = ""


@dataclass(frozen=True)
class TreatmentAction:
    """Descriptive treatment payload, carried through unchanged."""

    kind: TreatmentKind
    action: str
    description: str = ""


@dataclass(frozen=True)
class IdentificationCandidate:
    """Species hypothesis from one source."""

    name: str
    scientific_name: str
    confidence: float
    source_id: str
    family: Optional[str] = None


@dataclass(frozen=True)
class DiseaseCandidate:
    """Disease hypothesis from one source."""

    name: str
    probability: float
    description: str = ""
    symptoms: Tuple[VisualSymptom, ...] = ()
    treatments: Tuple[TreatmentAction, ...] = ()
    source_id: str = ""


@dataclass(frozen=True)
class IdentificationResult:
    """Chosen identification, confidence already capped."""

    name: str
    scientific_name: str
    confidence: float
    source_id: str


@dataclass(frozen=True)
class RankedDisease:
    """Merged disease entry in the final ranking."""

    name: str
    probability: float
    description: str
    symptoms: Tuple[VisualSymptom, ...]
    treatments: Tuple[TreatmentAction, ...]
    sources: Tuple[str, ...]


@dataclass(frozen=True)
class ConsensusResult:
    """Reconciled diagnosis for one request."""

    identification: Optional[IdentificationResult]
    is_healthy: bool
    diseases: Tuple[RankedDisease, ...]
    detected_symptoms: Tuple[VisualSymptom, ...]
    confidence_pct: int
    sources_used: Tuple[str, ...]
    unavailable_sources: Tuple[str, ...] = ()
    fallback_used: bool = False


@dataclass(frozen=True)
class InsufficientDataResult:
    """No source produced any evidence and the fallback found nothing."""

    message: str
    sources_used: Tuple[str, ...] = ()
    unavailable_sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RejectedNotAPlantResult:
    """The content gate decided the image does not show a plant."""

    label: str
    confidence: float
    message: str


@dataclass(frozen=True)
class GateVerdict:
    """Content gate decision."""

    is_plant: bool
    top_label: str
    confidence: float
    available: bool = True


@dataclass(frozen=True)
class SymptomExtraction:
    """Output of the visual symptom extractor."""

    symptoms: Tuple[VisualSymptom, ...]
    linked_diseases: Tuple[str, ...]
    narrative: str


@dataclass(frozen=True)
class NarratorReport:
    """Free-text description plus optional structured guesses from the narrator."""

    text: str
    identification: Optional[IdentificationCandidate] = None
    diseases: Tuple[DiseaseCandidate, ...] = ()


@dataclass(frozen=True)
class AdapterOutputs:
    """Everything the fan-out collected, handed to the consensus engine."""

    identifications: Tuple[IdentificationCandidate, ...] = ()
    diseases: Tuple[DiseaseCandidate, ...] = ()
    narrative: str = ""
    sources_used: Tuple[str, ...] = ()
    unavailable_sources: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.identifications or self.diseases or self.narrative.strip())
