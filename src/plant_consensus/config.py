"""Configuration management for PlantConsensus."""

import os
from pathlib import Path


class Config:
    """Configuration settings for the diagnosis consensus pipeline."""

    # Paths
    SQLITE_PATH: Path = Path(os.environ.get("EPPO_SQLITE_PATH", "eppocodes_all.sqlite"))
    EPPO_CACHE_DIR: Path = Path(os.environ.get("EPPO_CACHE_DIR", ".eppo_cache"))

    # API Keys
    PLANT_ID_API_KEY: str = os.environ.get("PLANT_ID_API_KEY", "")
    GROQ_API_KEY: str = os.environ.get("GROQ_API_KEY", "")
    HF_API_TOKEN: str = os.environ.get("HF_API_TOKEN", "")
    EPPO_API_KEY: str = os.environ.get("EPPO_API_KEY", "")

    # Logging
    LOG_LEVEL: str = os.environ.get("PLANT_CONSENSUS_LOG_LEVEL", "INFO")

    # Content gate (Hugging Face zero-shot image classification)
    HF_INFERENCE_URL: str = "https://api-inference.huggingface.co/models"
    GATE_MODEL: str = os.environ.get("GATE_MODEL", "openai/clip-vit-base-patch32")
    GATE_TIMEOUT: float = 10.0
    GATE_FAIL_OPEN_CONFIDENCE: float = 0.5
    GATE_REJECTION_FLOOR: float = float(os.environ.get("GATE_REJECTION_FLOOR", "0.3"))

    # Plant.id / crop health
    PLANT_ID_BASE_URL: str = os.environ.get("PLANT_ID_BASE_URL", "https://plant.id/api/v3")
    PLANT_ID_MAX_RETRIES: int = 2
    IDENTIFIER_TIMEOUT: float = 15.0
    HEALTH_TIMEOUT: float = 20.0

    # Groq vision narrator
    GROQ_VISION_MODEL: str = os.environ.get(
        "GROQ_VISION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct"
    )
    GROQ_MAX_TOKENS: int = 1024
    GROQ_TEMPERATURE: float = 0.2
    NARRATOR_TIMEOUT: float = 20.0

    # EPPO API Configuration
    EPPO_BASE_URL: str = "https://api.eppo.int/gd/v2"
    EPPO_RATE_LIMIT_DELAY: float = 0.2
    EPPO_MAX_RETRIES: int = 3
    REGISTRY_TIMEOUT: float = 10.0
    MAX_REGISTRY_PATHOGENS: int = 5

    # Host code retrieval
    HOST_CONFIDENCE_THRESHOLD: float = 0.5
    MAX_CANDIDATES: int = 50
    MIN_TOKEN_LEN: int = 2
    PLANT_DTCODE: str = "PFL"
    DTCODE_BONUS: float = 0.15
    EXACT_NAME_BONUS: float = 0.3
    MAX_SCORE_CAP: float = 1.5

    # Consensus
    CONFIDENCE_CAP: float = 0.70
    MAX_DISEASES: int = 3
    HEALTHY_NO_EVIDENCE_THRESHOLD: float = 0.55
    HEALTHY_WEAK_EVIDENCE_THRESHOLD: float = 0.50
    WEAK_EVIDENCE_MAX_SYMPTOMS: int = 1
    FALLBACK_CONFIDENCE_THRESHOLD: float = 0.40
    REGISTRY_DISEASE_PROBABILITY: float = 0.60
    STRONG_SYMPTOM_TERMS = (
        "mildew", "rust", "necros", "blight", "canker", "aphid", "virus",
        "oidio", "ruggine", "peronospora", "cancro", "afid",
    )

    # Fallback identifier
    FALLBACK_HINT_CONFIDENCE: float = 0.35
    FALLBACK_LABELER_MODEL: str = "google/vit-base-patch16-224"
    FALLBACK_TOP_K: int = 5
    FALLBACK_TIMEOUT: float = 10.0
    FALLBACK_USE_LABELER: bool = os.environ.get("FALLBACK_USE_LABELER", "").lower() in ("1", "true", "yes")

    # Worker threads for blocking adapter calls
    ADAPTER_WORKERS: int = 4

    @classmethod
    def timeouts(cls) -> dict:
        """Per-adapter timeout budgets in seconds, keyed by source id."""
        return {
            "identifier": cls.IDENTIFIER_TIMEOUT,
            "health_assessor": cls.HEALTH_TIMEOUT,
            "vision_narrator": cls.NARRATOR_TIMEOUT,
            "pathogen_registry": cls.REGISTRY_TIMEOUT,
            "fallback_identifier": cls.FALLBACK_TIMEOUT,
            "content_gate": cls.GATE_TIMEOUT,
        }

    @classmethod
    def validate(cls) -> bool:
        """Validate that required configuration is present."""
        if not (cls.PLANT_ID_API_KEY or cls.GROQ_API_KEY):
            raise ValueError(
                "Neither PLANT_ID_API_KEY nor GROQ_API_KEY is set: no diagnosis source available"
            )
        if cls.EPPO_API_KEY and not cls.SQLITE_PATH.exists():
            raise FileNotFoundError(f"SQLite database not found at {cls.SQLITE_PATH}")
        return True
