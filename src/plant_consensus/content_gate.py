"""Content gate: decide whether an image plausibly shows a plant."""

import base64
import logging
from typing import Callable, Dict, List, Optional

import requests

from .config import Config
from .errors import AdapterUnavailable
from .models import GateVerdict

logger = logging.getLogger(__name__)

PLANT_LABELS = frozenset({"plant", "leaf", "tree", "flower"})

# Zero-shot prompt -> gate label
LABEL_PROMPTS: Dict[str, str] = {
    "a photo of a plant": "plant",
    "a close-up photo of a leaf": "leaf",
    "a photo of a tree": "tree",
    "a photo of a flower": "flower",
    "a photo of an animal": "animal",
    "a photo of a person": "person",
    "a photo of food": "food",
    "a photo of a wall or plain background": "wall/background",
    "a photo of an object": "object",
    "a blank or completely dark image": "nothing",
}

GATE_LABELS = frozenset(LABEL_PROMPTS.values())

REJECTION_MESSAGES: Dict[str, str] = {
    "animal": "An animal was detected instead of a plant. Retake the photo framing only the plant.",
    "person": "A person was detected instead of a plant. Retake the photo framing only the plant.",
    "food": "The image looks like food rather than a living plant. Photograph the plant itself.",
    "wall/background": "Only background was detected. Move closer so the plant fills most of the frame.",
    "object": "An object was detected instead of a plant. Photograph the plant, its leaves or flowers.",
    "nothing": "No content was detected. Check the lighting and retake the photo.",
}
DEFAULT_REJECTION = "The image does not seem to contain a plant. Upload a photo of a plant, its leaves or flowers."

ScoreBackend = Callable[[bytes], List[Dict[str, float]]]


def fail_open_verdict() -> GateVerdict:
    """Permissive verdict used when the gate backend cannot answer."""
    return GateVerdict(
        is_plant=True,
        top_label="plant",
        confidence=Config.GATE_FAIL_OPEN_CONFIDENCE,
        available=False,
    )


def rejection_message(label: str) -> str:
    """User-facing message for a rejected image, chosen by label."""
    return REJECTION_MESSAGES.get(label, DEFAULT_REJECTION)


class HuggingFaceGateBackend:
    """Zero-shot image classification through the Hugging Face Inference API."""

    def __init__(self, api_token: str = None, model: str = None, timeout: float = None):
        """Initialize backend.

        Args:
            api_token: Hugging Face token (defaults to Config.HF_API_TOKEN)
            model: CLIP model id (defaults to Config.GATE_MODEL)
            timeout: Request timeout in seconds (defaults to Config.GATE_TIMEOUT)
        """
        self.api_token = api_token or Config.HF_API_TOKEN
        self.model = model or Config.GATE_MODEL
        self.timeout = timeout or Config.GATE_TIMEOUT

    def __call__(self, image: bytes) -> List[Dict[str, float]]:
        if not self.api_token:
            raise AdapterUnavailable("content_gate", "HF_API_TOKEN not set")

        url = f"{Config.HF_INFERENCE_URL}/{self.model}"
        payload = {
            "inputs": base64.b64encode(image).decode("ascii"),
            "parameters": {"candidate_labels": list(LABEL_PROMPTS)},
        }
        try:
            resp = requests.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_token}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise AdapterUnavailable("content_gate", str(e)) from e

        scores = []
        for item in data if isinstance(data, list) else []:
            label = LABEL_PROMPTS.get(item.get("label"), item.get("label"))
            if label in GATE_LABELS and isinstance(item.get("score"), (int, float)):
                scores.append({"label": label, "score": float(item["score"])})
        return scores


class ContentGate:
    """Binary plant / not-a-plant pre-filter that fails open."""

    def __init__(self, backend: Optional[ScoreBackend] = None, rejection_floor: float = None):
        """Initialize gate.

        Args:
            backend: Callable returning ``[{"label", "score"}]`` for an image
                (defaults to HuggingFaceGateBackend)
            rejection_floor: Minimum top score for a non-plant label to reject
                the image (defaults to Config.GATE_REJECTION_FLOOR)
        """
        self.backend = backend if backend is not None else HuggingFaceGateBackend()
        self.rejection_floor = (
            Config.GATE_REJECTION_FLOOR if rejection_floor is None else rejection_floor
        )

    def classify(self, image: bytes) -> GateVerdict:
        """Classify image content.

        Args:
            image: Raw image bytes

        Returns:
            GateVerdict; when the backend is unavailable or returns nothing
            usable, a permissive verdict with ``available=False``. A non-plant
            top label scoring below the rejection floor is let through.
        """
        try:
            scores = self.backend(image)
        except Exception as e:
            logger.warning("Content gate unavailable, allowing image: %s", e)
            return fail_open_verdict()

        scored = [s for s in scores or [] if s.get("label") in GATE_LABELS]
        if not scored:
            logger.warning("Content gate returned no usable labels, allowing image")
            return fail_open_verdict()

        top = max(scored, key=lambda s: s["score"])
        confidence = max(0.0, min(1.0, float(top["score"])))
        is_plant = top["label"] in PLANT_LABELS
        if not is_plant and confidence < self.rejection_floor:
            logger.info(
                "Content gate top label '%s' (%.2f) below rejection floor %.2f, allowing image",
                top["label"], confidence, self.rejection_floor,
            )
            is_plant = True

        verdict = GateVerdict(is_plant=is_plant, top_label=top["label"], confidence=confidence)
        logger.debug("Content gate: %s (%.2f)", verdict.top_label, verdict.confidence)
        return verdict
