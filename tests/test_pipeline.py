import asyncio
import json
import time
from unittest.mock import MagicMock

import pytest

from plant_consensus.assembler import assemble
from plant_consensus.content_gate import ContentGate
from plant_consensus.errors import AdapterUnavailable
from plant_consensus.models import (
    ConsensusResult,
    DiseaseCandidate,
    IdentificationCandidate,
    InsufficientDataResult,
    NarratorReport,
    RejectedNotAPlantResult,
)
from plant_consensus.pipeline import diagnose, diagnose_async

IMAGE = b"\xff\xd8\xff\xe0fake-jpeg"


class FakeIdentifier:
    def __init__(self, *candidates, error=None, delay=0.0):
        self.candidates = list(candidates)
        self.error = error
        self.delay = delay
        self.calls = 0

    def identify(self, image):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.candidates


class FakeAssessor:
    def __init__(self, *diseases, error=None):
        self.diseases = list(diseases)
        self.error = error

    def assess(self, image):
        if self.error:
            raise self.error
        return self.diseases


class FakeNarrator:
    def __init__(self, report=None, error=None):
        self.report = report or NarratorReport(text="")
        self.error = error
        self.contexts = []

    def describe(self, image, context=None):
        self.contexts.append(context)
        if self.error:
            raise self.error
        return self.report


class FakeRegistry:
    def __init__(self, pathogens=(), error=None):
        self.pathogens = list(pathogens)
        self.error = error
        self.queries = []

    def pathogens_for(self, species):
        self.queries.append(species)
        if self.error:
            raise self.error
        return self.pathogens


class FakeFallback:
    def __init__(self, candidate=None):
        self.candidate = candidate
        self.hints = None

    def identify(self, image, hints=()):
        self.hints = list(hints)
        return self.candidate


def plant_gate():
    return ContentGate(backend=lambda image: [{"label": "leaf", "score": 0.9}])


def ident(name, confidence, source="identifier", scientific=None):
    return IdentificationCandidate(
        name=name, scientific_name=scientific or name, confidence=confidence, source_id=source
    )


def run(**overrides):
    collaborators = {
        "gate": plant_gate(),
        "identifier": FakeIdentifier(),
        "health_assessor": FakeAssessor(),
        "narrator": FakeNarrator(),
        "registry": FakeRegistry(),
        "fallback": FakeFallback(),
    }
    collaborators.update(overrides)
    context = collaborators.pop("user_context", None)
    return diagnose(IMAGE, context, **collaborators)


def test_all_sources_down_is_insufficient_data():
    result = run(
        identifier=FakeIdentifier(error=AdapterUnavailable("identifier", "HTTP 500")),
        health_assessor=FakeAssessor(error=AdapterUnavailable("health_assessor", "HTTP 500")),
        narrator=FakeNarrator(error=AdapterUnavailable("vision_narrator", "HTTP 500")),
    )

    assert isinstance(result, InsufficientDataResult)
    assert result.sources_used == ()
    assert set(result.unavailable_sources) == {"identifier", "health_assessor", "vision_narrator"}


def test_not_a_plant_short_circuits():
    identifier = MagicMock()
    assessor = MagicMock()
    narrator = MagicMock()
    gate = ContentGate(backend=lambda image: [
        {"label": "animal", "score": 0.92},
        {"label": "plant", "score": 0.05},
    ])

    result = run(gate=gate, identifier=identifier, health_assessor=assessor, narrator=narrator)

    assert isinstance(result, RejectedNotAPlantResult)
    assert result.label == "animal"
    assert result.confidence == pytest.approx(0.92)
    assert "animal" in result.message.lower()
    identifier.identify.assert_not_called()
    assessor.assess.assert_not_called()
    narrator.describe.assert_not_called()


def test_gate_failure_lets_image_through():
    def broken(image):
        raise ConnectionError("inference API down")

    result = run(
        gate=ContentGate(backend=broken),
        identifier=FakeIdentifier(ident("Tomato", 0.9)),
        health_assessor=FakeAssessor(DiseaseCandidate("Early Blight", 0.8, "brown spots", source_id="health_assessor")),
    )
    assert isinstance(result, ConsensusResult)
    assert result.is_healthy is False


def test_slow_source_is_marked_unavailable():
    result = run(
        identifier=FakeIdentifier(ident("Tomato", 0.9), delay=0.5),
        health_assessor=FakeAssessor(
            DiseaseCandidate("Powdery Mildew", 0.85, "white powdery coating", source_id="health_assessor")
        ),
        timeouts={"identifier": 0.05},
    )

    assert isinstance(result, ConsensusResult)
    assert "identifier" in result.unavailable_sources
    assert "identifier" not in result.sources_used
    assert result.diseases[0].name == "Powdery Mildew"


def test_timed_out_source_does_not_hold_the_response():
    started = time.monotonic()
    result = run(
        identifier=FakeIdentifier(ident("Tomato", 0.9), delay=2.0),
        narrator=FakeNarrator(NarratorReport(text="A basil plant with healthy leaves")),
        timeouts={"identifier": 0.1},
    )
    elapsed = time.monotonic() - started

    assert elapsed < 1.0
    assert isinstance(result, ConsensusResult)
    assert "identifier" in result.unavailable_sources


def test_slow_source_within_budget_is_joined():
    narrator = FakeNarrator(NarratorReport(
        text="A small herb with green leaves",
        identification=ident("Basil", 0.5, "vision_narrator"),
    ))
    result = run(
        identifier=FakeIdentifier(ident("Tomato", 0.9), delay=0.2),
        narrator=narrator,
        timeouts={"identifier": 1.0},
    )

    assert "identifier" in result.sources_used
    assert "identifier" not in result.unavailable_sources
    assert result.identification.name == "Tomato"


def test_default_fallback_comes_from_config(monkeypatch):
    fallback = FakeFallback(ident("Basil", 0.6, "fallback_identifier"))
    monkeypatch.setattr(
        "plant_consensus.pipeline.FallbackIdentifier.from_config", classmethod(lambda cls: fallback)
    )
    collaborators = {
        "gate": plant_gate(),
        "identifier": FakeIdentifier(ident("Unknown herb", 0.2)),
        "health_assessor": FakeAssessor(),
        "narrator": FakeNarrator(),
        "registry": FakeRegistry(),
    }

    result = diagnose(IMAGE, "basil on the windowsill", **collaborators)

    assert fallback.hints == ["basil on the windowsill"]
    assert result.fallback_used is True
    assert result.identification.name == "Basil"


def test_unexpected_adapter_error_is_absorbed():
    result = run(
        identifier=FakeIdentifier(error=KeyError("result")),
        narrator=FakeNarrator(NarratorReport(text="A healthy looking basil plant")),
    )
    assert isinstance(result, ConsensusResult)
    assert result.unavailable_sources == ("identifier",)
    assert result.sources_used[0] == "vision_narrator"


def test_strong_consensus_skips_fallback():
    fallback = FakeFallback(ident("Basil", 0.99, "fallback_identifier"))
    narrator = FakeNarrator(NarratorReport(
        text="Brown concentric spots on the lower leaves.",
        identification=ident("Tomato", 0.7, "vision_narrator"),
        diseases=(DiseaseCandidate("Early Blight", 0.6, "Brown concentric spots", source_id="vision_narrator"),),
    ))

    result = run(
        identifier=FakeIdentifier(ident("Tomato", 0.9)),
        health_assessor=FakeAssessor(DiseaseCandidate("Early Blight", 0.8, "brown spots on leaves", source_id="health_assessor")),
        narrator=narrator,
        fallback=fallback,
        user_context="tomato in my garden",
    )

    assert result.is_healthy is False
    assert result.confidence_pct == 70
    assert result.diseases[0].sources == ("health_assessor", "vision_narrator")
    assert result.sources_used == ("identifier", "health_assessor", "vision_narrator")
    assert fallback.hints is None
    assert narrator.contexts == ["tomato in my garden"]


def test_fallback_and_registry_seed_diseases():
    fallback = FakeFallback(ident("Tomato", 0.6, "fallback_identifier", "Solanum lycopersicum"))
    registry = FakeRegistry(["Ralstonia solanacearum", "Clavibacter michiganensis"])
    narrator = FakeNarrator(NarratorReport(text="Looks like a tomato seedling."))

    result = run(
        identifier=FakeIdentifier(ident("Unknown herb", 0.2)),
        narrator=narrator,
        registry=registry,
        fallback=fallback,
        user_context="my pomodoro plant",
    )

    assert fallback.hints == ["my pomodoro plant", "Looks like a tomato seedling."]
    assert registry.queries == ["Solanum lycopersicum"]
    assert result.fallback_used is True
    assert result.identification.name == "Tomato"
    assert result.is_healthy is False
    assert [d.sources for d in result.diseases] == [("pathogen_registry",)] * 2
    assert "pathogen_registry" in result.sources_used


def test_registry_failure_is_recorded():
    result = run(
        identifier=FakeIdentifier(ident("Unknown herb", 0.2)),
        registry=FakeRegistry(error=AdapterUnavailable("pathogen_registry", "timeout")),
        fallback=FakeFallback(ident("Basil", 0.35, "fallback_identifier")),
    )

    assert result.fallback_used is True
    assert result.is_healthy is True
    assert result.unavailable_sources == ("pathogen_registry",)
    assert "pathogen_registry" not in result.sources_used


def test_rejected_fallback_does_not_query_registry():
    registry = FakeRegistry(["Ralstonia solanacearum"])
    result = run(
        identifier=FakeIdentifier(ident("Ficus", 0.3)),
        registry=registry,
        fallback=FakeFallback(ident("Basil", 0.1, "fallback_identifier")),
    )

    assert result.identification.name == "Ficus"
    assert result.fallback_used is False
    assert registry.queries == []


def test_same_inputs_same_response():
    kwargs = {
        "identifier": FakeIdentifier(ident("Rose", 0.8)),
        "health_assessor": FakeAssessor(
            DiseaseCandidate("Black Spot", 0.7, "black spots with yellow halo", source_id="health_assessor"),
            DiseaseCandidate("Powdery Mildew", 0.7, "white powder", source_id="health_assessor"),
        ),
    }
    first = json.dumps(assemble(run(**kwargs)), sort_keys=True)
    second = json.dumps(assemble(run(**kwargs)), sort_keys=True)
    assert first == second


def test_cancelling_the_caller_stops_waiting():
    async def scenario():
        task = asyncio.create_task(diagnose_async(
            IMAGE,
            gate=plant_gate(),
            identifier=FakeIdentifier(ident("Tomato", 0.9), delay=0.3),
            health_assessor=FakeAssessor(),
            narrator=FakeNarrator(),
            registry=FakeRegistry(),
            fallback=FakeFallback(),
        ))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
