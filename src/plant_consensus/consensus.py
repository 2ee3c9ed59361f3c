"""Consensus engine: reduce disagreeing source outputs to one diagnosis.

The engine is a pure reduction. ``reduce`` runs identification merge,
disease merge, symptom cross-reference, ranking, the healthy-override
policy and confidence calibration over the fan-out results. ``finalize``
folds in the fallback identification and registry pathogens (looked up
by the caller, since the lookup needs the revised species name) and
produces the terminal result.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .config import Config
from .models import (
    FALLBACK_IDENTIFIER,
    IDENTIFICATION_PRIORITY,
    PATHOGEN_REGISTRY,
    AdapterOutputs,
    ConsensusResult,
    DiseaseCandidate,
    IdentificationCandidate,
    IdentificationResult,
    InsufficientDataResult,
    RankedDisease,
    SymptomExtraction,
    TreatmentAction,
    VisualSymptom,
)
from .normalization import name_key
from .symptoms import extract

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA_MESSAGE = (
    "We could not gather enough information from this photo to give a diagnosis. "
    "Please retry with a clearer, well-lit photo taken closer to the affected leaves."
)

Outcome = Union[ConsensusResult, InsufficientDataResult]


@dataclass
class _MergedDisease:
    """Accumulator for one disease name across sources."""

    best: DiseaseCandidate
    symptoms: Dict[str, VisualSymptom] = field(default_factory=dict)
    treatments: List[TreatmentAction] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)

    def absorb(self, candidate: DiseaseCandidate):
        if candidate.probability > self.best.probability:
            self.best = candidate
        for symptom in candidate.symptoms:
            self.symptoms.setdefault(symptom.tag, symptom)
        for treatment in candidate.treatments:
            if treatment not in self.treatments:
                self.treatments.append(treatment)
        if candidate.source_id and candidate.source_id not in self.sources:
            self.sources.append(candidate.source_id)


@dataclass(frozen=True)
class ConsensusDraft:
    """Result of the primary reduction, before the fallback chain."""

    identification: Optional[IdentificationResult]
    raw_confidence: float
    is_healthy: bool
    diseases: Tuple[RankedDisease, ...]
    detected_symptoms: Tuple[VisualSymptom, ...]
    candidates: Tuple[DiseaseCandidate, ...]
    sources_used: Tuple[str, ...]
    unavailable_sources: Tuple[str, ...]
    has_evidence: bool


class ConsensusEngine:
    """Merge, calibrate and override policy over candidate lists."""

    def __init__(
        self,
        confidence_cap: float = None,
        max_diseases: int = None,
        no_evidence_threshold: float = None,
        weak_evidence_threshold: float = None,
        weak_evidence_max_symptoms: int = None,
        strong_terms: Sequence[str] = None,
        fallback_threshold: float = None,
        registry_probability: float = None,
        extractor: Callable[[str], SymptomExtraction] = extract,
    ):
        self.confidence_cap = confidence_cap if confidence_cap is not None else Config.CONFIDENCE_CAP
        self.max_diseases = max_diseases if max_diseases is not None else Config.MAX_DISEASES
        self.no_evidence_threshold = (
            no_evidence_threshold if no_evidence_threshold is not None
            else Config.HEALTHY_NO_EVIDENCE_THRESHOLD
        )
        self.weak_evidence_threshold = (
            weak_evidence_threshold if weak_evidence_threshold is not None
            else Config.HEALTHY_WEAK_EVIDENCE_THRESHOLD
        )
        self.weak_evidence_max_symptoms = (
            weak_evidence_max_symptoms if weak_evidence_max_symptoms is not None
            else Config.WEAK_EVIDENCE_MAX_SYMPTOMS
        )
        if strong_terms is None:
            strong_terms = Config.STRONG_SYMPTOM_TERMS
        self.strong_terms = tuple(t.lower() for t in strong_terms)
        self.fallback_threshold = (
            fallback_threshold if fallback_threshold is not None
            else Config.FALLBACK_CONFIDENCE_THRESHOLD
        )
        self.registry_probability = (
            registry_probability if registry_probability is not None
            else Config.REGISTRY_DISEASE_PROBABILITY
        )
        self.extractor = extractor

    # Identification

    def _cap(self, value: float) -> float:
        return max(0.0, min(value, self.confidence_cap))

    @staticmethod
    def _priority(source_id: str) -> int:
        try:
            return IDENTIFICATION_PRIORITY.index(source_id)
        except ValueError:
            return len(IDENTIFICATION_PRIORITY)

    def merge_identifications(
        self, candidates: Iterable[IdentificationCandidate]
    ) -> Optional[IdentificationCandidate]:
        """Pick the most confident identification; ties go to the higher-priority source."""
        candidates = list(candidates)
        if not candidates:
            return None

        best = min(candidates, key=lambda c: (-c.confidence, self._priority(c.source_id)))

        names = {name_key(c.name) for c in candidates}
        if len(names) > 1:
            logger.info(
                "Conflicting identifications %s; chose '%s' from %s (%.2f)",
                sorted(names), best.name, best.source_id, best.confidence,
            )
        return best

    def _as_result(self, candidate: IdentificationCandidate) -> IdentificationResult:
        return IdentificationResult(
            name=candidate.name,
            scientific_name=candidate.scientific_name,
            confidence=self._cap(candidate.confidence),
            source_id=candidate.source_id,
        )

    def confidence_pct(self, identification: Optional[IdentificationResult]) -> int:
        """Overall confidence in percent, never above the cap."""
        if identification is None:
            return 0
        ceiling = round(self.confidence_cap * 100)
        return max(0, min(ceiling, round(identification.confidence * 100)))

    # Diseases

    def merge_diseases(self, candidates: Iterable[DiseaseCandidate]) -> List[_MergedDisease]:
        """Union candidates, merging those with the same name (case-insensitive)."""
        merged: Dict[str, _MergedDisease] = {}
        for candidate in candidates:
            key = name_key(candidate.name)
            if not key or not candidate.source_id:
                logger.debug("Dropping disease candidate without name or provenance: %r", candidate)
                continue
            entry = merged.get(key)
            if entry is None:
                entry = merged[key] = _MergedDisease(best=candidate)
            entry.absorb(candidate)
        return list(merged.values())

    def cross_reference(
        self, merged: List[_MergedDisease]
    ) -> Tuple[List[Tuple[float, RankedDisease]], Tuple[VisualSymptom, ...]]:
        """Attach extracted symptoms to each disease and collect all detected symptoms.

        Returns:
            (raw probability, disease) pairs sorted best first, and the
            de-duplicated symptoms seen across every disease
        """
        scored: List[Tuple[float, RankedDisease]] = []
        for entry in merged:
            best = entry.best
            extraction = self.extractor(f"{best.name} {best.description}".strip())
            symptoms = dict(entry.symptoms)
            for symptom in extraction.symptoms:
                symptoms.setdefault(symptom.tag, symptom)
            scored.append((
                best.probability,
                RankedDisease(
                    name=best.name,
                    probability=self._cap(best.probability),
                    description=best.description,
                    symptoms=tuple(symptoms.values()),
                    treatments=tuple(entry.treatments),
                    sources=tuple(entry.sources),
                ),
            ))

        scored.sort(key=lambda pair: (-pair[0], name_key(pair[1].name)))

        detected: Dict[str, VisualSymptom] = {}
        for _, disease in scored:
            for symptom in disease.symptoms:
                detected.setdefault(symptom.tag, symptom)
        return scored, tuple(detected.values())

    def has_strong_evidence(self, symptoms: Iterable[VisualSymptom]) -> bool:
        """Whether any symptom tag names a high-severity condition."""
        return any(term in s.tag.lower() for s in symptoms for term in self.strong_terms)

    def should_declare_healthy(
        self, top_probability: float, ranked_count: int, detected: Sequence[VisualSymptom]
    ) -> bool:
        """Healthy-override policy.

        Weak signals must co-occur with either high probability or strong
        textual corroboration to stand. Healthy if any of:

        - nothing is ranked;
        - top probability below the no-evidence threshold and no visual evidence;
        - no strong visual evidence, at most the allowed number of symptoms,
          and top probability below the weak-evidence threshold.
        """
        if ranked_count == 0:
            return True
        if top_probability < self.no_evidence_threshold and not detected:
            return True
        if (
            not self.has_strong_evidence(detected)
            and len(detected) <= self.weak_evidence_max_symptoms
            and top_probability < self.weak_evidence_threshold
        ):
            return True
        return False

    def _consolidate(
        self, candidates: Iterable[DiseaseCandidate]
    ) -> Tuple[float, Tuple[RankedDisease, ...], Tuple[VisualSymptom, ...]]:
        scored, detected = self.cross_reference(self.merge_diseases(candidates))
        top = scored[0][0] if scored else 0.0
        ranked = tuple(disease for _, disease in scored[: self.max_diseases])
        return top, ranked, detected

    # Pipeline stages

    def reduce(self, outputs: AdapterOutputs) -> ConsensusDraft:
        """Run the primary reduction over adapter outputs.

        Args:
            outputs: Everything the fan-out collected

        Returns:
            ConsensusDraft, ready for the fallback decision
        """
        best = self.merge_identifications(outputs.identifications)
        identification = self._as_result(best) if best else None

        top, ranked, detected = self._consolidate(outputs.diseases)
        healthy = self.should_declare_healthy(top, len(ranked), detected)
        if healthy and ranked:
            logger.info(
                "Healthy override discarded %d disease(s) (top %.2f, %d symptom(s))",
                len(ranked), top, len(detected),
            )

        return ConsensusDraft(
            identification=identification,
            raw_confidence=best.confidence if best else 0.0,
            is_healthy=healthy,
            diseases=() if healthy else ranked,
            detected_symptoms=() if healthy else detected,
            candidates=() if healthy else tuple(outputs.diseases),
            sources_used=tuple(outputs.sources_used),
            unavailable_sources=tuple(outputs.unavailable_sources),
            has_evidence=not outputs.is_empty,
        )

    def needs_fallback(self, draft: ConsensusDraft) -> bool:
        """Weak identification, or a healthy verdict with nothing ranked."""
        confidence = draft.identification.confidence if draft.identification else 0.0
        return confidence < self.fallback_threshold or (draft.is_healthy and not draft.diseases)

    def accepts_fallback(
        self, draft: ConsensusDraft, candidate: Optional[IdentificationCandidate]
    ) -> bool:
        """Fallback only replaces the identification when strictly more confident."""
        if candidate is None or not self.needs_fallback(draft):
            return False
        return candidate.confidence > draft.raw_confidence

    def registry_candidates(self, pathogens: Iterable[str], species: str) -> List[DiseaseCandidate]:
        """Registry pathogens as disease candidates at a fixed moderate probability."""
        return [
            DiseaseCandidate(
                name=name,
                probability=self.registry_probability,
                description=f"Regulated pathogen recorded on {species} in the EPPO Global Database.",
                source_id=PATHOGEN_REGISTRY,
            )
            for name in dict.fromkeys(p.strip() for p in pathogens if p and p.strip())
        ]

    def finalize(
        self,
        draft: ConsensusDraft,
        fallback: Optional[IdentificationCandidate] = None,
        pathogens: Sequence[str] = (),
    ) -> Outcome:
        """Apply the fallback chain and build the terminal result.

        Args:
            draft: Output of ``reduce``
            fallback: Fallback identifier's guess, if it was run
            pathogens: Registry pathogens for the fallback species, if looked up

        Returns:
            ConsensusResult, or InsufficientDataResult when no source and no
            fallback produced anything
        """
        identification = draft.identification
        is_healthy = draft.is_healthy
        diseases = draft.diseases
        detected = draft.detected_symptoms
        sources = list(draft.sources_used)
        fallback_used = self.accepts_fallback(draft, fallback)

        if not draft.has_evidence and not fallback_used:
            logger.info("No source produced evidence; reporting insufficient data")
            return InsufficientDataResult(
                message=INSUFFICIENT_DATA_MESSAGE,
                sources_used=(),
                unavailable_sources=draft.unavailable_sources,
            )

        if fallback_used:
            identification = self._as_result(fallback)
            sources.append(FALLBACK_IDENTIFIER)
            logger.info("Fallback identification '%s' (%.2f) adopted", fallback.name, fallback.confidence)

            seeded = self.registry_candidates(pathogens, identification.name)
            if seeded:
                _, diseases, detected = self._consolidate(list(draft.candidates) + seeded)
                is_healthy = False
                sources.append(PATHOGEN_REGISTRY)
                logger.info("Registry returned %d pathogen(s) for '%s'", len(seeded), identification.name)

        return ConsensusResult(
            identification=identification,
            is_healthy=is_healthy,
            diseases=() if is_healthy else diseases,
            detected_symptoms=() if is_healthy else detected,
            confidence_pct=self.confidence_pct(identification),
            sources_used=tuple(dict.fromkeys(sources)),
            unavailable_sources=draft.unavailable_sources,
            fallback_used=fallback_used,
        )
