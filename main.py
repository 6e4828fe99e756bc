"""Recipe Import

Simple CLI for importing a recipe from an Instagram or Facebook post.
"""

import argparse
import asyncio
import json
from pathlib import Path

from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.extraction import ExtractionResult
from recipe_import.pipeline.orchestrator import build_pipeline


def print_result(result: ExtractionResult) -> None:
    if result.success and result.recipe:
        recipe = result.recipe
        print(f"\n[*] {recipe.title}  (confidence {result.confidence:.2f}, tier {result.tier_used})")
        print(f"   Sources: {result.sources_used.to_dict()}")
        print(f"\n   Ingredients ({len(recipe.ingredients)}):")
        for ingredient in recipe.ingredients:
            print(f"     - {ingredient.original_text}")
        print(f"\n   Steps ({len(recipe.instructions)}):")
        for step in recipe.instructions:
            print(f"     {step.step_number}. {step.text}")
    else:
        print(f"\n[!] Import failed: {result.failure_reason}")

    for note in result.notes:
        print(f"   note: {note}")
    print(f"   Runtime: {result.processing_time_ms}ms")


async def run_import(url: str | None, user_id: str, evidence_file: str | None, as_json: bool) -> None:
    pipeline = build_pipeline()
    if evidence_file:
        data = json.loads(Path(evidence_file).read_text(encoding="utf-8"))
        result = await pipeline.extract_from_evidence(EvidenceBundle.from_dict(data))
    else:
        print(f"Importing: {url}")
        print("-" * 50)
        result = await pipeline.extract(url, user_id)

    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_result(result)


def main():
    parser = argparse.ArgumentParser(description="Import a recipe from a social media post")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", "-u", help="Instagram or Facebook post URL")
    source.add_argument("--evidence-file", "-e", help="JSON evidence bundle to extract from (no scraping)")
    parser.add_argument("--user", default="cli", help="User id charged for the import")
    parser.add_argument("--json", action="store_true", help="Print the raw result envelope")

    args = parser.parse_args()

    asyncio.run(run_import(args.url, args.user, args.evidence_file, args.json))


if __name__ == "__main__":
    main()
