import pytest

from plant_consensus.symptoms import GENERIC_NARRATIVE, extract

# (text, expected tags)
TAG_CASES = [
    ("brown spots on leaves", {"browning", "leaf-spot"}),
    ("Macchie gialle sulle foglie", {"yellowing", "leaf-spot"}),
    ("white powdery coating on upper leaf surface", {"powdery-mildew"}),
    ("Orange rust pustules underneath", {"rust"}),
    ("Late Blight", {"blight", "necrosis"}),
    ("Colonies of aphids on new shoots", {"aphids"}),
    ("Ingiallimento diffuso", {"yellowing"}),
    ("Plant is wilting in the afternoon", {"wilting"}),
]


@pytest.mark.parametrize("text, expected", TAG_CASES)
def test_table_rules(text, expected):
    result = extract(text)
    assert {s.tag for s in result.symptoms} == expected


def test_linked_diseases_accumulate_across_rules():
    result = extract("Early Blight: brown spots with concentric rings")
    assert "Early Blight" in result.linked_diseases
    assert len(result.linked_diseases) == len(set(result.linked_diseases))


def test_first_match_sets_narrative():
    result = extract("yellow spots and wilting")
    assert "yellow spots" in result.narrative
    assert "wilting" not in result.narrative


def test_symptoms_are_deduplicated_by_tag():
    # "yellow spots" and "brown spots" both produce leaf-spot
    result = extract("yellow spots next to brown spots")
    tags = [s.tag for s in result.symptoms]
    assert tags.count("leaf-spot") == 1
    assert set(tags) == {"yellowing", "leaf-spot", "browning"}


def test_evidence_keeps_source_text():
    result = extract("  Brown spots on leaves ")
    assert all(s.evidence == "Brown spots on leaves" for s in result.symptoms)


@pytest.mark.parametrize("text, tag", [
    ("small spots here and there", "leaf-spot"),
    ("leaves turning a bit yellow", "yellowing"),
    ("some brown edges", "browning"),
    ("foglie marroni", "browning"),
])
def test_generic_heuristics(text, tag):
    result = extract(text)
    assert [s.tag for s in result.symptoms] == [tag]
    assert result.linked_diseases == ()


def test_spot_heuristic_wins_over_color():
    result = extract("brownish speck")
    assert [s.tag for s in result.symptoms] == ["leaf-spot"]


@pytest.mark.parametrize("text", ["", "Healthy leaf", None])
def test_no_match_gives_generic_narrative(text):
    result = extract(text)
    assert result.symptoms == ()
    assert result.linked_diseases == ()
    assert result.narrative == GENERIC_NARRATIVE


def test_extract_is_pure():
    text = "Powdery mildew with yellowing and curled leaves"
    assert extract(text) == extract(text)
