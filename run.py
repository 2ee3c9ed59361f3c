#!/usr/bin/env python3
"""Command-line interface for PlantConsensus."""

import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from plant_consensus import diagnose, render_text
from plant_consensus.config import Config
from plant_consensus.eppo_client import EPPOClient
from plant_consensus.fallback import FallbackIdentifier, ImageNetLabeler
from plant_consensus.models import ConsensusResult, InsufficientDataResult
from plant_consensus.narrator import VisionNarrator


def main():
    """Run plant diagnosis on image files from the command line."""
    parser = argparse.ArgumentParser(description="Diagnose plant photos")
    parser.add_argument("images", nargs="+", type=Path, help="Image files to diagnose")
    parser.add_argument("--context", default=None, help="Extra information about the plant")
    parser.add_argument(
        "--local-labeler",
        action="store_true",
        help="Use the local ImageNet labeler in the fallback identifier (needs the [local] extra)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=Config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Validate configuration
    try:
        Config.validate()
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Configuration Error: {e}")
        print("\nPlease ensure:")
        print("  1. PLANT_ID_API_KEY and/or GROQ_API_KEY environment variables are set")
        print("  2. EPPO_SQLITE_PATH points to a valid database when EPPO_API_KEY is set")
        sys.exit(1)

    # Initialize shared clients
    registry = EPPOClient()
    narrator = VisionNarrator()
    if args.local_labeler:
        fallback = FallbackIdentifier(labeler=ImageNetLabeler())
    else:
        fallback = FallbackIdentifier.from_config()

    print("🌿 PlantConsensus - Plant Diagnosis")
    print("=" * 80)
    print(f"Database: {Config.SQLITE_PATH}")
    print(f"Confidence Cap: {Config.CONFIDENCE_CAP:.0%}")
    print(f"Narrator Model: {Config.GROQ_VISION_MODEL}")
    print(f"Local Labeler: {Config.FALLBACK_LABELER_MODEL if fallback.labeler else 'off'}")
    print("=" * 80)

    results = []
    for path in tqdm(args.images, desc="🔬 Diagnosing"):
        try:
            image = path.read_bytes()
        except OSError as e:
            print(f"\n⚠️  Skipping {path}: {e}")
            continue

        result = diagnose(image, args.context, registry=registry, narrator=narrator, fallback=fallback)
        results.append((path, result))

        print(f"\n📷 {path.name}")
        print("-" * 80)
        print(render_text(result))

    if not results:
        sys.exit(1)

    # Display summary
    consensus = [r for _, r in results if isinstance(r, ConsensusResult)]
    healthy = sum(1 for r in consensus if r.is_healthy)
    insufficient = sum(1 for _, r in results if isinstance(r, InsufficientDataResult))
    rejected = len(results) - len(consensus) - insufficient

    print("\n" + "=" * 80)
    print("📊 SUMMARY STATISTICS")
    print("=" * 80)
    print(f"🦠 Diseased: {len(consensus) - healthy}/{len(results)}")
    print(f"✅ Healthy: {healthy}/{len(results)}")
    print(f"❔ Insufficient data: {insufficient}/{len(results)}")
    print(f"🚫 Not a plant: {rejected}/{len(results)}")

    eppo_stats = registry.get_stats()
    print(f"\n💾 EPPO API Cache:")
    print(f"   Hits: {eppo_stats['cache_hits']} (reused from disk)")
    print(f"   Misses: {eppo_stats['cache_misses']} (fetched from API)")
    print(f"   Total API Calls: {eppo_stats['api_calls']}")
    print(f"\n🤖 Groq Narrator Calls: {narrator.get_stats()['call_count']}")
    print("=" * 80)


if __name__ == "__main__":
    main()
