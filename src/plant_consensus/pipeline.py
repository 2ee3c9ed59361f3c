"""Main diagnosis pipeline."""

import asyncio
import dataclasses
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .config import Config
from .consensus import ConsensusEngine
from .content_gate import ContentGate, fail_open_verdict, rejection_message
from .eppo_client import EPPOClient
from .errors import AdapterUnavailable
from .fallback import FallbackIdentifier
from .models import (
    FALLBACK_IDENTIFIER,
    HEALTH_ASSESSOR,
    IDENTIFIER,
    PATHOGEN_REGISTRY,
    VISION_NARRATOR,
    AdapterOutputs,
    ConsensusResult,
    InsufficientDataResult,
    RejectedNotAPlantResult,
)
from .narrator import VisionNarrator
from .plant_id_client import CropHealthAssessor, PlantIdIdentifier

logger = logging.getLogger(__name__)

DiagnosisOutcome = Union[ConsensusResult, InsufficientDataResult, RejectedNotAPlantResult]


async def _call_adapter(
    source_id: str,
    fn: Callable[..., Any],
    *args: Any,
    timeout: float,
    executor: Optional[Executor] = None,
) -> Tuple[Any, bool]:
    """Run one blocking adapter call in a worker thread under its own timeout.

    Args:
        source_id: Source the call is attributed to in logs
        fn: Blocking adapter method
        *args: Arguments for ``fn``
        timeout: Budget in seconds; the call is abandoned, not joined, past it
        executor: Worker pool (the loop's default pool if None)

    Returns:
        Tuple of (value, available); value is None when the adapter timed
        out or failed, which the caller treats as empty evidence
    """
    loop = asyncio.get_running_loop()
    try:
        value = await asyncio.wait_for(loop.run_in_executor(executor, fn, *args), timeout=timeout)
        return value, True
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs", source_id, timeout)
    except AdapterUnavailable as e:
        logger.warning("%s", e)
    except Exception as e:
        logger.warning("%s failed: %s", source_id, e, exc_info=True)
    return None, False


async def gather_evidence(
    image: bytes,
    user_context: Optional[str],
    identifier: Any,
    health_assessor: Any,
    narrator: Any,
    timeouts: Dict[str, float],
    executor: Optional[Executor] = None,
) -> AdapterOutputs:
    """Fan out to the primary sources concurrently and join all of them.

    Args:
        image: Raw image bytes
        user_context: Optional free text from the user, passed to the narrator
        identifier: Object with ``identify(image)``
        health_assessor: Object with ``assess(image)``
        narrator: Object with ``describe(image, context)``
        timeouts: Per-source timeout budget in seconds
        executor: Worker pool for the blocking adapter calls

    Returns:
        AdapterOutputs combining every source that answered in time
    """
    (idents, ident_ok), (diseases, health_ok), (report, narrator_ok) = await asyncio.gather(
        _call_adapter(
            IDENTIFIER, identifier.identify, image,
            timeout=timeouts[IDENTIFIER], executor=executor,
        ),
        _call_adapter(
            HEALTH_ASSESSOR, health_assessor.assess, image,
            timeout=timeouts[HEALTH_ASSESSOR], executor=executor,
        ),
        _call_adapter(
            VISION_NARRATOR, narrator.describe, image, user_context,
            timeout=timeouts[VISION_NARRATOR], executor=executor,
        ),
    )

    identifications = list(idents or [])
    disease_candidates = list(diseases or [])
    narrative = ""
    sources = []
    if identifications:
        sources.append(IDENTIFIER)
    if disease_candidates:
        sources.append(HEALTH_ASSESSOR)

    if report is not None:
        narrative = report.text or ""
        if report.identification is not None:
            identifications.append(report.identification)
        disease_candidates.extend(report.diseases)
        if narrative.strip() or report.identification is not None or report.diseases:
            sources.append(VISION_NARRATOR)

    unavailable = [
        source_id
        for source_id, ok in (
            (IDENTIFIER, ident_ok),
            (HEALTH_ASSESSOR, health_ok),
            (VISION_NARRATOR, narrator_ok),
        )
        if not ok
    ]

    logger.debug(
        "Evidence: %d identification(s), %d disease(s), sources=%s, unavailable=%s",
        len(identifications), len(disease_candidates), sources, unavailable,
    )
    return AdapterOutputs(
        identifications=tuple(identifications),
        diseases=tuple(disease_candidates),
        narrative=narrative,
        sources_used=tuple(sources),
        unavailable_sources=tuple(unavailable),
    )


async def diagnose_async(
    image: bytes,
    user_context: Optional[str] = None,
    gate: Optional[ContentGate] = None,
    identifier: Any = None,
    health_assessor: Any = None,
    narrator: Any = None,
    registry: Any = None,
    fallback: Any = None,
    engine: Optional[ConsensusEngine] = None,
    timeouts: Optional[Dict[str, float]] = None,
    executor: Optional[Executor] = None,
) -> DiagnosisOutcome:
    """Diagnose a plant photo.

    Args:
        image: Raw image bytes
        user_context: Optional free text from the user (species, symptoms seen)
        gate: Content gate (creates new if None)
        identifier: Species identifier (Plant.id if None)
        health_assessor: Disease assessor (Plant.id health assessment if None)
        narrator: Vision narrator (Groq if None)
        registry: Regulated-pathogen registry (EPPO if None)
        fallback: Fallback identifier (built from Config if None)
        engine: Consensus engine (default thresholds if None)
        timeouts: Overrides for Config.timeouts(), keyed by source id
        executor: Worker pool for blocking adapter calls (loop default if None)

    Returns:
        ConsensusResult, InsufficientDataResult or RejectedNotAPlantResult
    """
    budget = Config.timeouts()
    budget.update(timeouts or {})

    # Initialize collaborators if not provided
    gate = gate or ContentGate()
    identifier = identifier or PlantIdIdentifier()
    health_assessor = health_assessor or CropHealthAssessor()
    narrator = narrator or VisionNarrator()
    registry = registry or EPPOClient()
    fallback = fallback or FallbackIdentifier.from_config()
    engine = engine or ConsensusEngine()

    # Step 1: Content gate
    loop = asyncio.get_running_loop()
    try:
        verdict = await asyncio.wait_for(
            loop.run_in_executor(executor, gate.classify, image), timeout=budget["content_gate"]
        )
    except asyncio.TimeoutError:
        logger.warning("Content gate timed out, allowing image")
        verdict = fail_open_verdict()
    if not verdict.is_plant:
        logger.info("Rejected image: %s (%.2f)", verdict.top_label, verdict.confidence)
        return RejectedNotAPlantResult(
            label=verdict.top_label,
            confidence=verdict.confidence,
            message=rejection_message(verdict.top_label),
        )

    # Step 2: Concurrent fan-out
    outputs = await gather_evidence(
        image, user_context, identifier, health_assessor, narrator, budget, executor
    )

    # Step 3: Primary consensus
    draft = engine.reduce(outputs)

    # Step 4: Fallback chain
    candidate = None
    pathogens = []
    if engine.needs_fallback(draft):
        hints = [h for h in (user_context, outputs.narrative) if h]
        candidate, _ = await _call_adapter(
            FALLBACK_IDENTIFIER, fallback.identify, image, hints,
            timeout=budget[FALLBACK_IDENTIFIER], executor=executor,
        )
        if engine.accepts_fallback(draft, candidate):
            species = candidate.scientific_name or candidate.name
            pathogens, registry_ok = await _call_adapter(
                PATHOGEN_REGISTRY, registry.pathogens_for, species,
                timeout=budget[PATHOGEN_REGISTRY], executor=executor,
            )
            if not registry_ok:
                draft = dataclasses.replace(
                    draft, unavailable_sources=draft.unavailable_sources + (PATHOGEN_REGISTRY,)
                )

    # Step 5: Final result
    return engine.finalize(draft, candidate, pathogens or ())


def diagnose(image: bytes, user_context: Optional[str] = None, **kwargs: Any) -> DiagnosisOutcome:
    """Synchronous wrapper around ``diagnose_async``.

    Adapter calls run on a pool owned by this call. Threads still running
    past their budget are abandoned on return, not joined.

    Args:
        image: Raw image bytes
        user_context: Optional free text from the user
        **kwargs: Collaborators and timeouts, as for ``diagnose_async``

    Returns:
        ConsensusResult, InsufficientDataResult or RejectedNotAPlantResult
    """
    executor = ThreadPoolExecutor(
        max_workers=Config.ADAPTER_WORKERS, thread_name_prefix="plant-consensus"
    )
    try:
        return asyncio.run(diagnose_async(image, user_context, executor=executor, **kwargs))
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
