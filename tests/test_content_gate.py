from unittest.mock import MagicMock, patch

import pytest
import requests

from plant_consensus.content_gate import (
    DEFAULT_REJECTION,
    ContentGate,
    HuggingFaceGateBackend,
    rejection_message,
)
from plant_consensus.errors import AdapterUnavailable


@pytest.mark.parametrize("label", ["plant", "leaf", "tree", "flower"])
def test_plant_labels_pass(label):
    gate = ContentGate(backend=lambda image: [{"label": label, "score": 0.4}, {"label": "object", "score": 0.3}])
    verdict = gate.classify(b"img")
    assert verdict.is_plant
    assert verdict.top_label == label
    assert verdict.available


def test_weak_non_plant_label_is_let_through():
    gate = ContentGate(backend=lambda image: [{"label": "food", "score": 0.21}, {"label": "plant", "score": 0.2}])
    verdict = gate.classify(b"img")
    assert verdict.is_plant
    assert verdict.top_label == "food"
    assert verdict.confidence == pytest.approx(0.21)
    assert verdict.available


def test_confident_non_plant_label_rejected():
    gate = ContentGate(backend=lambda image: [{"label": "food", "score": 0.8}, {"label": "plant", "score": 0.1}])
    verdict = gate.classify(b"img")
    assert not verdict.is_plant
    assert verdict.top_label == "food"
    assert "food" in rejection_message(verdict.top_label).lower()


def test_rejection_floor_is_configurable():
    scores = [{"label": "food", "score": 0.21}, {"label": "plant", "score": 0.2}]
    assert not ContentGate(backend=lambda image: scores, rejection_floor=0.0).classify(b"img").is_plant
    assert ContentGate(backend=lambda image: scores, rejection_floor=0.5).classify(b"img").is_plant


@pytest.mark.parametrize("scores", [[], None, [{"label": "spaceship", "score": 0.9}]])
def test_unusable_scores_fail_open(scores):
    verdict = ContentGate(backend=lambda image: scores).classify(b"img")
    assert verdict.is_plant
    assert verdict.available is False


def test_backend_error_fails_open():
    backend = MagicMock(side_effect=AdapterUnavailable("content_gate", "HF_API_TOKEN not set"))
    verdict = ContentGate(backend=backend).classify(b"img")
    assert verdict.is_plant
    assert verdict.confidence == pytest.approx(0.5)
    assert verdict.available is False


def test_rejection_messages():
    assert "person" in rejection_message("person").lower()
    assert rejection_message("something else") == DEFAULT_REJECTION


def test_backend_without_token_is_unavailable():
    with pytest.raises(AdapterUnavailable):
        HuggingFaceGateBackend(api_token="")(b"img")


@patch("plant_consensus.content_gate.requests.post")
def test_backend_maps_prompts_to_labels(mock_post):
    mock_post.return_value.json.return_value = [
        {"label": "a photo of an animal", "score": 0.7},
        {"label": "a close-up photo of a leaf", "score": 0.2},
        {"label": "unrelated prompt", "score": 0.1},
    ]
    backend = HuggingFaceGateBackend(api_token="hf_test", model="openai/clip-vit-base-patch32")

    scores = backend(b"img")

    assert scores == [{"label": "animal", "score": 0.7}, {"label": "leaf", "score": 0.2}]
    url = mock_post.call_args[0][0]
    assert url.endswith("/openai/clip-vit-base-patch32")
    assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer hf_test"


@patch("plant_consensus.content_gate.requests.post")
def test_backend_http_error_is_unavailable(mock_post):
    mock_post.return_value.raise_for_status.side_effect = requests.HTTPError("503")
    with pytest.raises(AdapterUnavailable):
        HuggingFaceGateBackend(api_token="hf_test")(b"img")
