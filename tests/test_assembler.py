import json

from plant_consensus.assembler import HEALTHY_MESSAGE, assemble, care_advice, render_text
from plant_consensus.models import (
    ConsensusResult,
    IdentificationResult,
    InsufficientDataResult,
    RankedDisease,
    RejectedNotAPlantResult,
    TreatmentAction,
    TreatmentKind,
    VisualSymptom,
)

SPRAY = TreatmentAction(TreatmentKind.IMMEDIATE, "Apply copper fungicide", "Every 7 days")
PRUNE = TreatmentAction(TreatmentKind.ONGOING, "Remove infected leaves")
ROTATE = TreatmentAction(TreatmentKind.PREVENTIVE, "Rotate crops")

TOMATO = IdentificationResult(
    name="Tomato", scientific_name="Solanum lycopersicum", confidence=0.7, source_id="identifier"
)

DISEASED = ConsensusResult(
    identification=TOMATO,
    is_healthy=False,
    diseases=(
        RankedDisease(
            name="Early Blight",
            probability=0.7,
            description="Brown spots with rings",
            symptoms=(VisualSymptom("leaf-spot", "brown spots"),),
            treatments=(SPRAY, PRUNE),
            sources=("health_assessor", "vision_narrator"),
        ),
        RankedDisease(
            name="Septoria Leaf Spot",
            probability=0.55,
            description="",
            symptoms=(),
            treatments=(PRUNE, ROTATE),
            sources=("health_assessor",),
        ),
    ),
    detected_symptoms=(VisualSymptom("leaf-spot", "brown spots"), VisualSymptom("browning", "brown spots")),
    confidence_pct=70,
    sources_used=("identifier", "health_assessor", "vision_narrator"),
)

HEALTHY = ConsensusResult(
    identification=TOMATO,
    is_healthy=True,
    diseases=(),
    detected_symptoms=(),
    confidence_pct=70,
    sources_used=("identifier",),
    unavailable_sources=("vision_narrator",),
)


def test_diseased_response():
    response = assemble(DISEASED)

    assert response["status"] == "diseased"
    assert response["confidence_pct"] == 70
    assert [d["name"] for d in response["diseases"]] == ["Early Blight", "Septoria Leaf Spot"]
    assert response["diseases"][0]["treatments"][0] == {
        "kind": "immediate", "action": "Apply copper fungicide", "description": "Every 7 days",
    }
    assert response["diseases"][0]["sources"] == ["health_assessor", "vision_narrator"]
    assert response["detected_symptoms"][1] == {"tag": "browning", "evidence": "brown spots"}
    assert response["identification"]["scientific_name"] == "Solanum lycopersicum"
    json.dumps(response)


def test_care_advice_groups_and_deduplicates():
    assert care_advice(DISEASED) == {
        "immediate": ["Apply copper fungicide"],
        "ongoing": ["Remove infected leaves"],
        "preventive": ["Rotate crops"],
    }


def test_healthy_response():
    response = assemble(HEALTHY)
    assert response["status"] == "healthy"
    assert response["diseases"] == []
    assert response["message"] == HEALTHY_MESSAGE
    assert response["unavailable_sources"] == ["vision_narrator"]


def test_other_outcomes():
    rejected = assemble(RejectedNotAPlantResult(label="food", confidence=0.81234567, message="Food"))
    assert rejected == {"status": "not_a_plant", "label": "food", "confidence": 0.8123, "message": "Food"}

    insufficient = assemble(InsufficientDataResult(message="Retry", unavailable_sources=("identifier",)))
    assert insufficient["status"] == "insufficient_data"
    assert insufficient["sources_used"] == []


def test_assemble_is_stable():
    assert json.dumps(assemble(DISEASED)) == json.dumps(assemble(DISEASED))


def test_render_text():
    text = render_text(DISEASED)
    assert "Plant: Tomato (Solanum lycopersicum)" in text
    assert "1. Early Blight (70%)" in text
    assert "Symptoms: leaf-spot, browning" in text

    assert "Status: healthy" in render_text(HEALTHY)
    assert render_text(InsufficientDataResult(message="Retry")).startswith("Insufficient data")
