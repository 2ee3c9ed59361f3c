"""Free-text plant condition narration using a Groq vision model."""

import base64
import json
import logging
from typing import Any, Dict, Optional

from groq import Groq

from .config import Config
from .errors import AdapterUnavailable
from .models import VISION_NARRATOR, DiseaseCandidate, NarratorReport
from .normalization import normalize_diseases, normalize_identifications

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert plant pathologist. You look at a single photo of a plant and describe what is visibly there.

Describe only what you can see:
- Leaf color changes, spots, lesions, coatings, holes, curling, wilting
- Visible pests (aphids, mites, caterpillars) and their location
- Stem, flower and fruit condition when visible

Be conservative:
- If the plant looks healthy, say so and return no diseases
- Keep confidence values low when the evidence in the photo is weak
- Never invent symptoms that are not visible

Reply with a JSON object only, using this schema:
{
  "species": "common name or null",
  "scientific_name": "scientific name or null",
  "confidence": number between 0 and 1 for the species,
  "description": "two or three sentences describing the visible condition",
  "diseases": [
    {"name": "disease or pest name", "confidence": number between 0 and 1, "symptoms": ["visible symptom"]}
  ]
}"""


def _guess_mime(image: bytes) -> str:
    if image[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


class VisionNarrator:
    """Narrator for the visible condition of a plant photo."""

    source_id = VISION_NARRATOR

    def __init__(self, api_key: str = None, model: str = None, client: Any = None):
        """Initialize narrator.

        Args:
            api_key: Groq API key (defaults to Config.GROQ_API_KEY)
            model: Vision model name (defaults to Config.GROQ_VISION_MODEL)
            client: Preconfigured Groq client (built from api_key if None)
        """
        self.api_key = api_key or Config.GROQ_API_KEY
        self.model = model or Config.GROQ_VISION_MODEL
        if client is not None:
            self.client = client
        else:
            self.client = (
                Groq(api_key=self.api_key, timeout=Config.NARRATOR_TIMEOUT) if self.api_key else None
            )
        self.call_count = 0

    def _user_content(self, image: bytes, context: Optional[str]) -> list:
        prompt = "Describe the visible condition of this plant."
        if context:
            prompt += f"\nThe owner adds: {context.strip()}"
        data_url = f"data:{_guess_mime(image)};base64,{base64.b64encode(image).decode('ascii')}"
        return [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": data_url}},
        ]

    def _parse(self, content: str) -> NarratorReport:
        """Parse the model's JSON reply into a report.

        Args:
            content: Raw message content

        Returns:
            NarratorReport; a reply that is not JSON is kept as plain text
        """
        try:
            payload: Dict[str, Any] = json.loads(content)
        except ValueError:
            return NarratorReport(text=content.strip())
        if not isinstance(payload, dict):
            return NarratorReport(text=content.strip())

        text = str(payload.get("description") or "").strip()

        identification = None
        if payload.get("species") or payload.get("scientific_name"):
            found = normalize_identifications(
                [{
                    "common_name": payload.get("species"),
                    "scientific_name": payload.get("scientific_name"),
                    "confidence": payload.get("confidence"),
                }],
                self.source_id,
            )
            identification = found[0] if found else None

        diseases = []
        for candidate in normalize_diseases(payload.get("diseases") or [], self.source_id):
            # The description carries the narrator's free text for symptom cross-reference
            description = " ".join(p for p in (candidate.description, text) if p)
            diseases.append(
                DiseaseCandidate(
                    name=candidate.name,
                    probability=candidate.probability,
                    description=description,
                    symptoms=candidate.symptoms,
                    treatments=candidate.treatments,
                    source_id=candidate.source_id,
                )
            )

        return NarratorReport(text=text, identification=identification, diseases=tuple(diseases))

    def describe(self, image: bytes, context: Optional[str] = None) -> NarratorReport:
        """Describe the plant in an image.

        Args:
            image: Raw image bytes
            context: Optional free-text context from the user

        Returns:
            NarratorReport with free text and structured guesses

        Raises:
            AdapterUnavailable: No Groq key, or the request failed
        """
        if not self.client:
            raise AdapterUnavailable(self.source_id, "GROQ_API_KEY not set")

        try:
            self.call_count += 1
            response = self.client.chat.completions.create(
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self._user_content(image, context)},
                ],
                model=self.model,
                max_completion_tokens=Config.GROQ_MAX_TOKENS,
                temperature=Config.GROQ_TEMPERATURE,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise AdapterUnavailable(self.source_id, str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        return self._parse(content or "")

    def get_stats(self) -> Dict[str, int]:
        """Get narrator statistics.

        Returns:
            Dictionary with call_count
        """
        return {"call_count": self.call_count}
