"""PlantConsensus - multi-source plant diagnosis consensus engine."""

__version__ = "1.0.0"

from .pipeline import diagnose, diagnose_async
from .consensus import ConsensusEngine
from .symptoms import extract
from .assembler import assemble, render_text
from .models import ConsensusResult, InsufficientDataResult, RejectedNotAPlantResult
from .config import Config

__all__ = [
    "diagnose",
    "diagnose_async",
    "ConsensusEngine",
    "extract",
    "assemble",
    "render_text",
    "ConsensusResult",
    "InsufficientDataResult",
    "RejectedNotAPlantResult",
    "Config",
]
