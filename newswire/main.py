#!/usr/bin/env python3
import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from newswire.news_service import NewsService
from newswire.pipeline.content_aggregator import MODES, ContentAggregator, FetchTimings
from newswire.pipeline.section_config import SectionConfigError, UnknownSectionError, load_section_configs
from newswire.services.ai_service import AIService, AIServiceError
from newswire.services.cache_service import SqliteCacheBackend, StalenessCache
from newswire.services.deduplication_service import DeduplicationService
from newswire.services.enrichment_service import EnrichmentService
from newswire.services.fetcher_factory import build_fetchers
from newswire.services.http_client import HttpClient
from newswire.services.source_fetcher import ProviderCredentials
from newswire.services.source_ranking_service import SourceRankingService
from newswire.utils.error_monitoring import CircuitBreaker, ErrorHandler
from newswire.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Process configuration"""
    timings: FetchTimings
    credentials: ProviderCredentials

    # AI enrichment
    gemini_api_key: str = ""
    gemini_model: Optional[str] = None

    # Paths
    sections_path: Optional[str] = None
    cache_db_path: Optional[str] = None
    log_dir: str = "logs"
    log_level: str = "INFO"
    structured_logs: bool = False


def load_config() -> PipelineConfig:
    """Load configuration from the environment (after .env)."""
    return PipelineConfig(
        timings=FetchTimings.from_environment(),
        credentials=ProviderCredentials.from_environment(),
        gemini_api_key=os.getenv('GEMINI_API_KEY', ''),
        gemini_model=os.getenv('GEMINI_MODEL') or None,
        sections_path=os.getenv('SECTIONS_CONFIG_PATH') or None,
        cache_db_path=os.getenv('CACHE_DB_PATH') or None,
        log_dir=os.getenv('LOG_DIR', 'logs'),
        log_level=os.getenv('LOG_LEVEL', 'INFO'),
        structured_logs=(os.getenv('STRUCTURED_LOGS', 'false').lower() == 'true'),
    )


def build_enricher(config: PipelineConfig) -> Optional[EnrichmentService]:
    if not config.gemini_api_key:
        logger.info("GEMINI_API_KEY not set, enrichment disabled")
        return None
    try:
        ai = AIService(api_key=config.gemini_api_key, model=config.gemini_model)
    except AIServiceError as e:
        logger.error(f"❌ Enrichment disabled: {e}")
        return None
    return EnrichmentService(ai)


async def build_news_service(config: PipelineConfig) -> NewsService:
    """Wire the aggregator and its collaborators."""
    registry = load_section_configs(config.sections_path)
    error_handler = ErrorHandler()

    persistent = SqliteCacheBackend(config.cache_db_path) if config.cache_db_path else None
    cache = StalenessCache(persistent=persistent, error_handler=error_handler)
    await cache.initialize()

    http = HttpClient(timeout=config.timings.source_timeout)
    fetchers = build_fetchers(registry, http, config.credentials, error_handler, CircuitBreaker())

    aggregator = ContentAggregator(
        registry=registry,
        fetchers=fetchers,
        cache=cache,
        ranker=SourceRankingService(),
        deduplicator=DeduplicationService(),
        enricher=build_enricher(config),
        timings=config.timings,
        error_handler=error_handler,
    )
    return NewsService(aggregator, credentials=config.credentials, http=http)


def _print(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
        return

    if "articles" in payload:
        flag = " (partial)" if payload.get("partial") else ""
        cached = " [cached]" if payload.get("cached") else ""
        print(f"📰 {payload['section']}: {payload['total']} articles{flag}{cached} @ {payload.get('timestamp', '')}")
        for i, article in enumerate(payload["articles"], 1):
            tags = f" [{', '.join(article['tags'])}]" if article.get("tags") else ""
            age = article.get("age_minutes")
            age_text = f"{age}m ago" if age is not None else "undated"
            print(f"{i:3}. ★{article['rating']:.1f} {article['title'][:90]}{tags}")
            print(f"     {article['source']} · {age_text} · {article['url']}")
            for point in article.get("summary_points") or []:
                print(f"       - {point}")
    else:
        for key, value in payload.items():
            print(f"{key}: {json.dumps(value, ensure_ascii=False, default=str)}")


async def main(argv: Optional[list] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description="newswire section aggregator")
    parser.add_argument('--section', default='world', help='Section to fetch (default: world)')
    parser.add_argument('--mode', choices=MODES, default='fast', help='fast: deadline-bounded, full: every source')
    parser.add_argument('--wait', action='store_true', help='Wait for background refinement and print the refreshed entry')
    parser.add_argument('--status', action='store_true', help='Show service status')
    parser.add_argument('--clear-cache', action='store_true', help='Clear all cached sections')
    parser.add_argument('--json', action='store_true', help='Print raw JSON')
    args = parser.parse_args(argv)

    load_dotenv()
    config = load_config()
    setup_logging(config.log_level, config.log_dir, enable_structured_logging=config.structured_logs)

    try:
        service = await build_news_service(config)
    except SectionConfigError as e:
        logger.error(f"❌ Invalid section configuration: {e}")
        return 2

    async with service:
        try:
            if args.clear_cache:
                _print(await service.clear_cache(), args.json)
                return 0
            if args.status:
                _print(await service.get_status(), args.json)
                return 0

            payload = await service.get_section(args.section, args.mode)
            if args.wait:
                await service.wait_for_background()
                payload = await service.get_section(args.section, args.mode)
            _print(payload, args.json)
        except UnknownSectionError as e:
            print(f"❌ {e}", file=sys.stderr)
            return 2
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n⚠️ Shutting down gracefully...")


if __name__ == "__main__":
    run()
