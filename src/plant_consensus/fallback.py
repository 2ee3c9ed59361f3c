"""Local, low-cost species guesser used when primary evidence is weak."""

import io
import logging
import re
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple

from .config import Config
from .models import FALLBACK_IDENTIFIER, IdentificationCandidate

logger = logging.getLogger(__name__)


class PlantKeyword(NamedTuple):
    keyword: str
    name: str
    scientific_name: str


# First match wins: multi-word keywords precede the single words they contain
PLANT_KEYWORDS: Tuple[PlantKeyword, ...] = (
    PlantKeyword("snake plant", "Snake plant", "Dracaena trifasciata"),
    PlantKeyword("bell pepper", "Pepper", "Capsicum annuum"),
    PlantKeyword("granny smith", "Apple", "Malus domestica"),
    PlantKeyword("head cabbage", "Cabbage", "Brassica oleracea"),
    PlantKeyword("lady's slipper", "Orchid", "Orchidaceae"),
    PlantKeyword("strawberry", "Strawberry", "Fragaria x ananassa"),
    PlantKeyword("sunflower", "Sunflower", "Helianthus annuus"),
    PlantKeyword("rosemary", "Rosemary", "Salvia rosmarinus"),
    PlantKeyword("lavender", "Lavender", "Lavandula angustifolia"),
    PlantKeyword("monstera", "Monstera", "Monstera deliciosa"),
    PlantKeyword("melanzana", "Eggplant", "Solanum melongena"),
    PlantKeyword("eggplant", "Eggplant", "Solanum melongena"),
    PlantKeyword("zucchini", "Zucchini", "Cucurbita pepo"),
    PlantKeyword("cucumber", "Cucumber", "Cucumis sativus"),
    PlantKeyword("broccoli", "Broccoli", "Brassica oleracea var. italica"),
    PlantKeyword("pomodoro", "Tomato", "Solanum lycopersicum"),
    PlantKeyword("tomato", "Tomato", "Solanum lycopersicum"),
    PlantKeyword("potato", "Potato", "Solanum tuberosum"),
    PlantKeyword("patata", "Potato", "Solanum tuberosum"),
    PlantKeyword("peperone", "Pepper", "Capsicum annuum"),
    PlantKeyword("pepper", "Pepper", "Capsicum annuum"),
    PlantKeyword("lattuga", "Lettuce", "Lactuca sativa"),
    PlantKeyword("lettuce", "Lettuce", "Lactuca sativa"),
    PlantKeyword("basilico", "Basil", "Ocimum basilicum"),
    PlantKeyword("basil", "Basil", "Ocimum basilicum"),
    PlantKeyword("fragola", "Strawberry", "Fragaria x ananassa"),
    PlantKeyword("girasole", "Sunflower", "Helianthus annuus"),
    PlantKeyword("rosmarino", "Rosemary", "Salvia rosmarinus"),
    PlantKeyword("lavanda", "Lavender", "Lavandula angustifolia"),
    PlantKeyword("orchidea", "Orchid", "Orchidaceae"),
    PlantKeyword("orchid", "Orchid", "Orchidaceae"),
    PlantKeyword("tulipano", "Tulip", "Tulipa"),
    PlantKeyword("tulip", "Tulip", "Tulipa"),
    PlantKeyword("cactus", "Cactus", "Cactaceae"),
    PlantKeyword("grape", "Grapevine", "Vitis vinifera"),
    PlantKeyword("uva", "Grapevine", "Vitis vinifera"),
    PlantKeyword("apple", "Apple", "Malus domestica"),
    PlantKeyword("mela", "Apple", "Malus domestica"),
    PlantKeyword("corn", "Maize", "Zea mays"),
    PlantKeyword("mais", "Maize", "Zea mays"),
    PlantKeyword("daisy", "Daisy", "Bellis perennis"),
    PlantKeyword("lemon", "Lemon", "Citrus limon"),
    PlantKeyword("limone", "Lemon", "Citrus limon"),
    PlantKeyword("orange tree", "Orange", "Citrus sinensis"),
    PlantKeyword("arancio", "Orange", "Citrus sinensis"),
    PlantKeyword("ficus", "Ficus", "Ficus"),
    PlantKeyword("fern", "Fern", "Polypodiopsida"),
    PlantKeyword("felce", "Fern", "Polypodiopsida"),
    PlantKeyword("aloe", "Aloe vera", "Aloe vera"),
    PlantKeyword("menta", "Mint", "Mentha"),
    PlantKeyword("mint", "Mint", "Mentha"),
    PlantKeyword("rosa", "Rose", "Rosa"),
    PlantKeyword("rose", "Rose", "Rosa"),
    PlantKeyword("palma", "Palm", "Arecaceae"),
    PlantKeyword("palm", "Palm", "Arecaceae"),
    PlantKeyword("olive", "Olive", "Olea europaea"),
    PlantKeyword("ulivo", "Olive", "Olea europaea"),
)

Labeler = Callable[[bytes], List[Tuple[str, float]]]


def match_plant(text: str) -> Optional[PlantKeyword]:
    """Find the first known plant keyword mentioned in a text as a whole word.

    A plain English plural ("tomatoes", "roses") also matches.
    """
    lowered = (text or "").lower()
    for entry in PLANT_KEYWORDS:
        if re.search(r"\b" + re.escape(entry.keyword) + r"(?:e?s)?\b", lowered):
            return entry
    return None


class ImageNetLabeler:
    """Local ImageNet classifier (``transformers`` pipeline, ``[local]`` extra)."""

    def __init__(self, model: str = None, top_k: int = None):
        from transformers import pipeline

        self.model = model or Config.FALLBACK_LABELER_MODEL
        self.top_k = top_k or Config.FALLBACK_TOP_K
        self._pipe = pipeline("image-classification", model=self.model)

    def __call__(self, image: bytes) -> List[Tuple[str, float]]:
        from PIL import Image

        outputs = self._pipe(Image.open(io.BytesIO(image)).convert("RGB"), top_k=self.top_k)
        return [(o["label"], float(o["score"])) for o in outputs]


class FallbackIdentifier:
    """Keyword-based species guesser over local labels and text hints."""

    source_id = FALLBACK_IDENTIFIER

    def __init__(self, labeler: Optional[Labeler] = None, hint_confidence: float = None):
        """Initialize identifier.

        Args:
            labeler: Optional local image labeler returning (label, score) pairs
            hint_confidence: Confidence for matches found only in text hints
                (defaults to Config.FALLBACK_HINT_CONFIDENCE)
        """
        self.labeler = labeler
        self.hint_confidence = (
            Config.FALLBACK_HINT_CONFIDENCE if hint_confidence is None else hint_confidence
        )

    @classmethod
    def from_config(cls) -> "FallbackIdentifier":
        """Build the identifier, with the local labeler when Config.FALLBACK_USE_LABELER is set."""
        labeler = ImageNetLabeler() if Config.FALLBACK_USE_LABELER else None
        return cls(labeler=labeler)

    def _candidate(self, entry: PlantKeyword, confidence: float) -> IdentificationCandidate:
        return IdentificationCandidate(
            name=entry.name,
            scientific_name=entry.scientific_name,
            confidence=max(0.0, min(1.0, confidence)),
            source_id=self.source_id,
        )

    def identify(self, image: bytes, hints: Iterable[str] = ()) -> Optional[IdentificationCandidate]:
        """Guess the species without any network call.

        Args:
            image: Raw image bytes, passed to the labeler if one is configured
            hints: Free-text hints such as the user's context or narrator text

        Returns:
            IdentificationCandidate, or None if nothing recognisable was found
        """
        if self.labeler is not None:
            labels = self.labeler(image)
            for label, score in sorted(labels, key=lambda pair: -pair[1]):
                entry = match_plant(label)
                if entry:
                    logger.debug("Fallback labeler matched '%s' (%.2f)", label, score)
                    return self._candidate(entry, score)

        for hint in hints:
            entry = match_plant(hint)
            if entry:
                logger.debug("Fallback hint matched '%s'", entry.keyword)
                return self._candidate(entry, self.hint_confidence)

        return None
