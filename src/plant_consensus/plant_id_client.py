"""Plant.id (kindwise) adapters: species identification and health assessment."""

import base64
import logging
import time
from typing import Any, Dict, List

import requests

from .config import Config
from .errors import AdapterUnavailable
from .models import HEALTH_ASSESSOR, IDENTIFIER, DiseaseCandidate, IdentificationCandidate
from .normalization import normalize_diseases, normalize_identifications

logger = logging.getLogger(__name__)


class PlantIdClient:
    """Thin HTTP client for the Plant.id v3 API."""

    source_id = ""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: float = None,
        max_retries: int = None,
    ):
        """Initialize client.

        Args:
            api_key: Plant.id API key (defaults to Config.PLANT_ID_API_KEY)
            base_url: Base URL for API (defaults to Config.PLANT_ID_BASE_URL)
            timeout: Request timeout in seconds
            max_retries: Maximum attempts per request (defaults to Config.PLANT_ID_MAX_RETRIES)
        """
        self.api_key = api_key or Config.PLANT_ID_API_KEY
        self.base_url = base_url or Config.PLANT_ID_BASE_URL
        self.timeout = timeout or Config.IDENTIFIER_TIMEOUT
        self.max_retries = max_retries or Config.PLANT_ID_MAX_RETRIES
        self.api_calls = 0

    def _post(self, endpoint: str, image: bytes, details: str) -> Dict[str, Any]:
        """POST an image to an endpoint with retries.

        Raises:
            AdapterUnavailable: No API key, or every attempt failed
        """
        if not self.api_key:
            raise AdapterUnavailable(self.source_id, "PLANT_ID_API_KEY not set")

        url = f"{self.base_url.rstrip('/')}/{endpoint}"
        body = {"images": [base64.b64encode(image).decode("ascii")]}
        headers = {"Api-Key": self.api_key, "Content-Type": "application/json"}

        last_error = None
        for attempt in range(self.max_retries):
            try:
                self.api_calls += 1
                resp = requests.post(
                    url, json=body, headers=headers, params={"details": details}, timeout=self.timeout
                )
                resp.raise_for_status()
                return resp.json()
            except (requests.RequestException, ValueError) as e:
                last_error = e
                logger.debug("%s attempt %d failed: %s", endpoint, attempt + 1, e)
                if attempt < self.max_retries - 1:
                    time.sleep(0.5 * (2**attempt))

        raise AdapterUnavailable(self.source_id, str(last_error))


class PlantIdIdentifier(PlantIdClient):
    """Species identifier backed by the Plant.id identification endpoint."""

    source_id = IDENTIFIER

    def identify(self, image: bytes) -> List[IdentificationCandidate]:
        """Identify the species in an image.

        Returns:
            Candidates in provider order; empty if Plant.id thinks it is not a plant
        """
        data = self._post("identification", image, details="common_names,taxonomy")
        is_plant = (data.get("result") or {}).get("is_plant") or {}
        if is_plant.get("binary") is False:
            logger.info("Plant.id: image not recognised as a plant")
            return []
        return normalize_identifications(data, self.source_id)


class CropHealthAssessor(PlantIdClient):
    """Disease assessor backed by the Plant.id health assessment endpoint."""

    source_id = HEALTH_ASSESSOR

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("timeout", Config.HEALTH_TIMEOUT)
        super().__init__(*args, **kwargs)

    def assess(self, image: bytes) -> List[DiseaseCandidate]:
        """Assess plant health.

        Returns:
            Disease candidates with provider probabilities
        """
        data = self._post(
            "health_assessment", image, details="common_names,description,treatment,cause"
        )
        return normalize_diseases(data, self.source_id)
