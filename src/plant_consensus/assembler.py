"""Rendering of diagnosis outcomes for API responses and the console.

Pure formatting: nothing here re-sorts diseases or re-derives health.
"""

from typing import Any, Dict, List, Union

from .models import (
    ConsensusResult,
    InsufficientDataResult,
    RankedDisease,
    RejectedNotAPlantResult,
    TreatmentKind,
    VisualSymptom,
)

HEALTHY_MESSAGE = "No disease signs were confirmed. Keep monitoring the plant and its growing conditions."

Outcome = Union[ConsensusResult, InsufficientDataResult, RejectedNotAPlantResult]


def _symptom(symptom: VisualSymptom) -> Dict[str, str]:
    return {"tag": symptom.tag, "evidence": symptom.evidence}


def _disease(disease: RankedDisease) -> Dict[str, Any]:
    return {
        "name": disease.name,
        "probability": round(disease.probability, 4),
        "description": disease.description,
        "symptoms": [s.tag for s in disease.symptoms],
        "treatments": [
            {"kind": t.kind.value, "action": t.action, "description": t.description}
            for t in disease.treatments
        ],
        "sources": list(disease.sources),
    }


def care_advice(result: ConsensusResult) -> Dict[str, List[str]]:
    """Treatment actions of all ranked diseases, grouped by kind."""
    advice: Dict[str, List[str]] = {kind.value: [] for kind in TreatmentKind}
    for disease in result.diseases:
        for treatment in disease.treatments:
            bucket = advice[treatment.kind.value]
            if treatment.action not in bucket:
                bucket.append(treatment.action)
    return advice


def assemble(outcome: Outcome) -> Dict[str, Any]:
    """Convert an outcome into a JSON-ready dictionary.

    Args:
        outcome: ConsensusResult, InsufficientDataResult or RejectedNotAPlantResult

    Returns:
        Dictionary with a ``status`` of ``diseased``, ``healthy``,
        ``insufficient_data`` or ``not_a_plant``
    """
    if isinstance(outcome, RejectedNotAPlantResult):
        return {
            "status": "not_a_plant",
            "label": outcome.label,
            "confidence": round(outcome.confidence, 4),
            "message": outcome.message,
        }

    if isinstance(outcome, InsufficientDataResult):
        return {
            "status": "insufficient_data",
            "message": outcome.message,
            "sources_used": list(outcome.sources_used),
            "unavailable_sources": list(outcome.unavailable_sources),
        }

    ident = outcome.identification
    return {
        "status": "healthy" if outcome.is_healthy else "diseased",
        "identification": None if ident is None else {
            "name": ident.name,
            "scientific_name": ident.scientific_name,
            "confidence": round(ident.confidence, 4),
            "source": ident.source_id,
        },
        "is_healthy": outcome.is_healthy,
        "confidence_pct": outcome.confidence_pct,
        "diseases": [_disease(d) for d in outcome.diseases],
        "detected_symptoms": [_symptom(s) for s in outcome.detected_symptoms],
        "care_advice": care_advice(outcome),
        "message": HEALTHY_MESSAGE if outcome.is_healthy else "",
        "sources_used": list(outcome.sources_used),
        "unavailable_sources": list(outcome.unavailable_sources),
        "fallback_used": outcome.fallback_used,
    }


def render_text(outcome: Outcome) -> str:
    """Render an outcome as a short console report."""
    if isinstance(outcome, RejectedNotAPlantResult):
        return f"Not a plant ({outcome.label}): {outcome.message}"

    if isinstance(outcome, InsufficientDataResult):
        return f"Insufficient data: {outcome.message}"

    parts = []
    ident = outcome.identification
    if ident is not None:
        scientific = f" ({ident.scientific_name})" if ident.scientific_name != ident.name else ""
        parts.append(f"Plant: {ident.name}{scientific}")
    else:
        parts.append("Plant: not identified")
    parts.append(f"Confidence: {outcome.confidence_pct}%")

    if outcome.is_healthy:
        parts.append(f"Status: healthy. {HEALTHY_MESSAGE}")
    else:
        parts.append("Status: signs of disease")
        for rank, disease in enumerate(outcome.diseases, start=1):
            parts.append(
                f"  {rank}. {disease.name} ({disease.probability:.0%}) [{', '.join(disease.sources)}]"
            )
        if outcome.detected_symptoms:
            parts.append("Symptoms: " + ", ".join(s.tag for s in outcome.detected_symptoms))
        for kind, actions in care_advice(outcome).items():
            if actions:
                parts.append(f"{kind.capitalize()} care: " + "; ".join(actions[:3]))

    parts.append("Sources: " + (", ".join(outcome.sources_used) or "none"))
    return "\n".join(parts)
