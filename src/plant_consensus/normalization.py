"""Normalization of provider responses into candidate objects."""

import re
from typing import Any, Iterable, List, Optional, Tuple

from .config import Config
from .models import (
    DiseaseCandidate,
    IdentificationCandidate,
    TreatmentAction,
    TreatmentKind,
    VisualSymptom,
)
from .symptoms import extract

# Provider treatment sections, mapped onto when they apply
TREATMENT_SECTIONS = (
    ("chemical", TreatmentKind.IMMEDIATE),
    ("biological", TreatmentKind.ONGOING),
    ("prevention", TreatmentKind.PREVENTIVE),
    ("immediate", TreatmentKind.IMMEDIATE),
    ("ongoing", TreatmentKind.ONGOING),
    ("preventive", TreatmentKind.PREVENTIVE),
)

# Places a disease list has been seen in provider payloads
_DISEASE_PATHS = (
    ("result", "disease", "suggestions"),
    ("health_assessment", "diseases"),
    ("healthAssessment", "diseases"),
    ("detectedDiseases",),
    ("diseases",),
    ("analysis", "diseases"),
    ("issues",),
)

_IDENTIFICATION_PATHS = (
    ("result", "classification", "suggestions"),
    ("suggestions",),
    ("identifications",),
)


def tokenize(text: str) -> List[str]:
    """Tokenize text into lowercase words of minimum length."""
    text = (text or "").strip().lower()
    tokens = re.split(r"[^\w]+", text)
    return [t for t in tokens if len(t) >= Config.MIN_TOKEN_LEN]


def name_key(name: str) -> str:
    """Case- and whitespace-insensitive key used to merge candidates by name."""
    return " ".join((name or "").lower().split())


def coerce_probability(value: Any) -> Optional[float]:
    """Convert a provider score to [0, 1]; values above 1 are percentages."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if value > 1.0:
        value = value / 100.0
    return max(0.0, min(1.0, value))


def _dig(raw: Any, path: Tuple[str, ...]) -> Any:
    node = raw
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _first_str(*values: Any) -> str:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _first_number(entry: dict, *keys: str) -> Optional[float]:
    for key in keys:
        prob = coerce_probability(entry.get(key))
        if prob is not None:
            return prob
    return None


def _as_texts(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [v.strip() for v in value if isinstance(v, str) and v.strip()]
    return []


def normalize_treatments(raw: Any) -> Tuple[TreatmentAction, ...]:
    """Normalize a treatment payload.

    Args:
        raw: Dict of sections (``chemical``/``biological``/``prevention`` or
            ``immediate``/``ongoing``/``preventive``), a list of strings or
            dicts with ``kind``/``action``, or a single string

    Returns:
        Tuple of TreatmentAction, duplicates removed
    """
    actions: List[TreatmentAction] = []

    if isinstance(raw, dict):
        for section, kind in TREATMENT_SECTIONS:
            for text in _as_texts(raw.get(section)):
                actions.append(TreatmentAction(kind=kind, action=text))
    elif isinstance(raw, (list, tuple)):
        for item in raw:
            if isinstance(item, str) and item.strip():
                actions.append(TreatmentAction(kind=TreatmentKind.ONGOING, action=item.strip()))
            elif isinstance(item, dict):
                action = _first_str(item.get("action"), item.get("name"))
                if not action:
                    continue
                try:
                    kind = TreatmentKind(str(item.get("kind", "ongoing")).lower())
                except ValueError:
                    kind = TreatmentKind.ONGOING
                actions.append(
                    TreatmentAction(
                        kind=kind,
                        action=action,
                        description=_first_str(item.get("description")),
                    )
                )
    elif isinstance(raw, str) and raw.strip():
        actions.append(TreatmentAction(kind=TreatmentKind.ONGOING, action=raw.strip()))

    return tuple(dict.fromkeys(actions))


def normalize_symptom_texts(texts: Iterable[str]) -> Tuple[VisualSymptom, ...]:
    """Map provider symptom strings onto the controlled symptom vocabulary."""
    seen = {}
    for text in texts:
        for symptom in extract(text).symptoms:
            seen.setdefault(symptom.tag, symptom)
    return tuple(seen.values())


def _disease_entries(raw: Any) -> List[dict]:
    if isinstance(raw, list):
        return [d for d in raw if isinstance(d, dict)]
    entries: List[dict] = []
    for path in _DISEASE_PATHS:
        found = _dig(raw, path)
        if isinstance(found, list):
            entries.extend(d for d in found if isinstance(d, dict))
    return entries


def normalize_diseases(raw: Any, source_id: str) -> List[DiseaseCandidate]:
    """Normalize a provider's disease payload into candidates.

    Args:
        raw: Provider JSON (any of the known shapes) or a list of disease dicts
        source_id: Source the candidates are attributed to

    Returns:
        List of DiseaseCandidate; entries without a usable name are skipped
    """
    if not raw:
        return []

    candidates: List[DiseaseCandidate] = []
    for entry in _disease_entries(raw):
        details = entry.get("details") or entry.get("disease_details") or {}
        if not isinstance(details, dict):
            details = {}

        name = _first_str(
            entry.get("name"), entry.get("label"), entry.get("disease"), entry.get("title")
        )
        if not name:
            continue

        common_names = _as_texts(details.get("common_names"))
        if common_names:
            name = common_names[0]

        probability = _first_number(entry, "probability", "score", "confidence")
        description = _first_str(
            entry.get("description"), details.get("description"), entry.get("summary")
        )
        treatments = normalize_treatments(
            entry.get("treatment") or entry.get("treatments") or details.get("treatment")
        )
        symptoms = normalize_symptom_texts(_as_texts(entry.get("symptoms")))

        candidates.append(
            DiseaseCandidate(
                name=name,
                probability=probability if probability is not None else 0.0,
                description=description,
                symptoms=symptoms,
                treatments=treatments,
                source_id=source_id,
            )
        )

    return candidates


def normalize_identifications(raw: Any, source_id: str) -> List[IdentificationCandidate]:
    """Normalize a provider's species suggestions into candidates.

    Args:
        raw: Provider JSON with a suggestions list, or a list of suggestion dicts
        source_id: Source the candidates are attributed to

    Returns:
        List of IdentificationCandidate in provider order
    """
    if not raw:
        return []

    entries: List[dict] = []
    if isinstance(raw, list):
        entries = [e for e in raw if isinstance(e, dict)]
    else:
        for path in _IDENTIFICATION_PATHS:
            found = _dig(raw, path)
            if isinstance(found, list):
                entries = [e for e in found if isinstance(e, dict)]
                break

    candidates: List[IdentificationCandidate] = []
    for entry in entries:
        details = entry.get("details") or {}
        if not isinstance(details, dict):
            details = {}
        scientific = _first_str(
            entry.get("scientific_name"), entry.get("scientificName"), entry.get("name")
        )
        common = _as_texts(details.get("common_names") or entry.get("common_names"))
        name = _first_str(common[0] if common else None, entry.get("common_name"), scientific)
        if not name:
            continue
        confidence = _first_number(entry, "probability", "confidence", "score")
        taxonomy = details.get("taxonomy") or {}
        family = taxonomy.get("family") if isinstance(taxonomy, dict) else None

        candidates.append(
            IdentificationCandidate(
                name=name,
                scientific_name=scientific or name,
                confidence=confidence if confidence is not None else 0.0,
                source_id=source_id,
                family=family if isinstance(family, str) else None,
            )
        )

    return candidates
