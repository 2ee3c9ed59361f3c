import pytest

PLANT_ID_HEALTH = {
    "result": {
        "is_healthy": {"binary": False, "probability": 0.12},
        "disease": {
            "suggestions": [
                {
                    "name": "Alternaria solani",
                    "probability": 0.81,
                    "details": {
                        "common_names": ["Early blight"],
                        "description": "Brown spots with concentric rings on older leaves.",
                        "treatment": {
                            "chemical": ["Apply a copper-based fungicide"],
                            "biological": ["Spray Bacillus subtilis weekly"],
                            "prevention": ["Rotate crops", "Water at the base"],
                        },
                    },
                },
                {"name": "water deficiency", "probability": 0.2, "details": {}},
            ]
        },
    }
}

PLANT_ID_IDENTIFICATION = {
    "result": {
        "is_plant": {"binary": True, "probability": 0.98},
        "classification": {
            "suggestions": [
                {
                    "name": "Solanum lycopersicum",
                    "probability": 0.93,
                    "details": {
                        "common_names": ["Tomato", "Garden tomato"],
                        "taxonomy": {"family": "Solanaceae"},
                    },
                },
                {"name": "Solanum melongena", "probability": 0.03, "details": {}},
            ]
        },
    }
}


@pytest.fixture
def plant_id_health():
    return PLANT_ID_HEALTH


@pytest.fixture
def plant_id_identification():
    return PLANT_ID_IDENTIFICATION
