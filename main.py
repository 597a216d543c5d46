"""SERP Entity Gap Analyzer

Simple CLI for running an entity analysis of the top search results.
"""

import argparse
import asyncio
import json
import sys

from serp_entities.agents.orchestrator import PipelineStage, build_pipeline
from serp_entities.config import settings
from serp_entities.errors import categorize_error, status_code_for, user_message
from serp_entities.models.schemas import PipelineResult, SearchParams
from serp_entities.services.logger import configure_logging

STAGE_LABELS = {
    PipelineStage.CACHE_CHECK: "Checking cache",
    PipelineStage.SEARCHING: "Searching top results",
    PipelineStage.FETCHING: "Fetching pages",
    PipelineStage.EXTRACTING_ENTITIES: "Extracting entities",
    PipelineStage.AGGREGATING: "Aggregating entities",
    PipelineStage.COMPARING: "Comparing with your page",
    PipelineStage.SUMMARIZING: "Writing summary",
    PipelineStage.COMPLETE: "Done",
}


def print_stage(stage: PipelineStage) -> None:
    label = STAGE_LABELS.get(stage)
    if label:
        print(f"[~] {label}...", file=sys.stderr)


def print_report(result: PipelineResult) -> None:
    print(f"\n[*] Top results ({len(result.top10)}):")
    for item in result.top10:
        print(f"  {item.position}. {item.title}")
        print(f"     {item.url}")

    print(f"\n[*] Top entities ({len(result.aggregate)} total):")
    for i, entity in enumerate(result.aggregate[:20], 1):
        print(
            f"  {i}. {entity.lemma} ({entity.type}) - {entity.doc_count} docs, "
            f"avg salience {entity.avg_salience:.3f}"
        )

    if result.comparison is not None:
        print(f"\n[*] Missing entities on {result.comparison.user_page.url}:")
        for gap in result.comparison.entity_gaps:
            print(f"  - {gap.entity.lemma} [{gap.importance}]: {gap.recommendation}")

    if result.errors:
        print(f"\n[!] Errors ({len(result.errors)}):")
        for url, message in result.errors.items():
            print(f"  {url}: {message}")

    print(f"\n{'=' * 50}")
    print("SUMMARY" + (" (template)" if result.summary_fallback_used else ""))
    print(f"{'=' * 50}")
    print(result.llm_summary)
    print(f"Runtime: {result.processing_time}ms")


async def run_analysis(args: argparse.Namespace) -> int:
    params = SearchParams(
        query=args.query,
        country=args.country,
        lang=args.lang,
        device=args.device,
        user_url=args.user_url,
    )
    pipeline = build_pipeline(on_stage=None if args.json else print_stage)

    if args.clear_cache:
        await pipeline.clear_cache(params)

    try:
        result = await pipeline.run_analysis(params)
    except Exception as exc:
        category = categorize_error(exc)
        print(f"\n[!] Error ({status_code_for(exc)} {category.value}): {user_message(exc)}", file=sys.stderr)
        print(f"    {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
    else:
        print_report(result)
    return 0


def main():
    parser = argparse.ArgumentParser(description="SERP Entity Gap Analyzer")
    parser.add_argument("--query", "-q", required=True, help="Search query")
    parser.add_argument("--country", default=settings.default_country, help="Search country code")
    parser.add_argument("--lang", default=settings.default_lang, help="Search language code")
    parser.add_argument(
        "--device",
        default=settings.default_device,
        choices=["desktop", "mobile", "tablet"],
        help="Device to emulate",
    )
    parser.add_argument("--user-url", help="Your page to compare against the top results")
    parser.add_argument("--clear-cache", action="store_true", help="Ignore any cached result")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")

    args = parser.parse_args()

    configure_logging()
    sys.exit(asyncio.run(run_analysis(args)))


if __name__ == "__main__":
    main()
