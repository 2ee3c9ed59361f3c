"""Visual symptom extraction from free-text labels and descriptions.

Maps the wording any source uses (English or Italian) onto a small
controlled vocabulary of symptom tags, plus the disease classes each
symptom commonly points to. ``extract`` is pure: the same text always
yields the same result.
"""

from typing import Dict, List, NamedTuple, Tuple

from .models import SymptomExtraction, VisualSymptom


class SymptomRule(NamedTuple):
    triggers: Tuple[str, ...]
    tags: Tuple[str, ...]
    diseases: Tuple[str, ...]


# Order matters: the first matching rule provides the narrative.
SYMPTOM_TABLE: Dict[str, SymptomRule] = {
    "yellow spots": SymptomRule(
        triggers=("yellow spot", "yellow-spot", "chlorotic spot", "macchie gialle", "macchia gialla"),
        tags=("yellowing", "leaf-spot"),
        diseases=("Septoria Leaf Spot", "Downy Mildew", "Cedar Apple Rust"),
    ),
    "brown spots": SymptomRule(
        triggers=(
            "brown spot", "dark spot", "black spot", "brown lesion",
            "macchie marroni", "macchie brune", "macchie nere", "macchia marrone",
        ),
        tags=("browning", "leaf-spot"),
        diseases=("Early Blight", "Septoria Leaf Spot", "Anthracnose", "Black Spot"),
    ),
    "powdery coating": SymptomRule(
        triggers=("powdery", "white powder", "mildew", "oidio", "polvere bianca", "muffa bianca"),
        tags=("powdery-mildew",),
        diseases=("Powdery Mildew", "Downy Mildew"),
    ),
    "rust pustules": SymptomRule(
        triggers=("rust", "orange pustule", "ruggine", "pustole"),
        tags=("rust",),
        diseases=("Leaf Rust", "Cedar Apple Rust"),
    ),
    "blight": SymptomRule(
        triggers=("blight", "peronospora", "water-soaked", "water soaked"),
        tags=("blight", "necrosis"),
        diseases=("Early Blight", "Late Blight", "Bacterial Blight"),
    ),
    "necrosis": SymptomRule(
        triggers=("necros", "dead tissue", "tessuto morto", "necrotic"),
        tags=("necrosis",),
        diseases=("Bacterial Leaf Spot", "Late Blight"),
    ),
    "canker": SymptomRule(
        triggers=("canker", "cancro"),
        tags=("canker",),
        diseases=("Bacterial Canker", "Citrus Canker"),
    ),
    "rot": SymptomRule(
        triggers=("root rot", "stem rot", "fruit rot", "rotting", "marciume", "decay"),
        tags=("rot",),
        diseases=("Root Rot", "Overwatering"),
    ),
    "mold": SymptomRule(
        triggers=("mold", "mould", "botrytis", "muffa grigia", "grey mold", "gray mold"),
        tags=("mold",),
        diseases=("Botrytis Gray Mold", "Sooty Mold"),
    ),
    "mosaic": SymptomRule(
        triggers=("mosaic", "mottl", "mosaico", "virus", "virosi"),
        tags=("mosaic-virus",),
        diseases=("Mosaic Virus", "Tomato Yellow Leaf Curl Virus"),
    ),
    "leaf curl": SymptomRule(
        triggers=("leaf curl", "curling", "curled", "arricciament", "accartocciament"),
        tags=("leaf-curl",),
        diseases=("Leaf Curl", "Tomato Yellow Leaf Curl Virus", "Aphid Infestation"),
    ),
    "aphids": SymptomRule(
        triggers=("aphid", "afidi", "pidocchi", "greenfly"),
        tags=("aphids",),
        diseases=("Aphid Infestation",),
    ),
    "mites": SymptomRule(
        triggers=("spider mite", "webbing", "ragnetto", "acari"),
        tags=("mites",),
        diseases=("Spider Mite Infestation",),
    ),
    "wilting": SymptomRule(
        triggers=("wilt", "droop", "avvizziment", "appassit"),
        tags=("wilting",),
        diseases=("Fusarium Wilt", "Underwatering", "Root Rot"),
    ),
    "yellowing": SymptomRule(
        triggers=(
            "yellowing", "yellow leaves", "chlorosis", "ingialliment",
            "foglie gialle", "clorosi",
        ),
        tags=("yellowing",),
        diseases=("Nitrogen Deficiency", "Overwatering", "Iron Chlorosis"),
    ),
    "leaf drop": SymptomRule(
        triggers=("leaf drop", "defoliation", "caduta foglie", "defogliazione"),
        tags=("leaf-drop",),
        diseases=("Environmental Stress", "Overwatering"),
    ),
    "holes": SymptomRule(
        triggers=("holes in", "chewed", "fori", "rosicchiat"),
        tags=("leaf-holes",),
        diseases=("Caterpillar Damage", "Slug Damage"),
    ),
}

# Generic wording checked only when no table rule matched, in this order
_GENERIC_HEURISTICS = (
    (("spot", "macchi", "speck", "puntin"), "leaf-spot", "leaf spotting"),
    (("yellow", "giall", "chlorot"), "yellowing", "yellowing"),
    (("brown", "marron", "brun", "bruno"), "browning", "browning"),
)

GENERIC_NARRATIVE = "A visible anomaly was noted, but it does not match a known symptom pattern."


def _narrative(key: str) -> str:
    return f"Observed {key}, a pattern consistent with the listed conditions."


def extract(text: str) -> SymptomExtraction:
    """Extract visual symptoms and linked diseases from free text.

    Args:
        text: Label, disease name or description from any source

    Returns:
        SymptomExtraction with de-duplicated symptoms (by tag, first evidence
        kept), de-duplicated linked disease names and a one-line narrative
    """
    lowered = (text or "").lower()
    evidence = (text or "").strip()

    symptoms: Dict[str, VisualSymptom] = {}
    diseases: List[str] = []
    narrative = ""

    for key, rule in SYMPTOM_TABLE.items():
        if not any(trigger in lowered for trigger in rule.triggers):
            continue
        for tag in rule.tags:
            symptoms.setdefault(tag, VisualSymptom(tag=tag, evidence=evidence))
        diseases.extend(rule.diseases)
        if not narrative:
            narrative = _narrative(key)

    if not symptoms:
        for words, tag, label in _GENERIC_HEURISTICS:
            if any(word in lowered for word in words):
                symptoms[tag] = VisualSymptom(tag=tag, evidence=evidence)
                narrative = _narrative(label)
                break
        else:
            narrative = GENERIC_NARRATIVE

    return SymptomExtraction(
        symptoms=tuple(symptoms.values()),
        linked_diseases=tuple(dict.fromkeys(diseases)),
        narrative=narrative,
    )
