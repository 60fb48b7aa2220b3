#!/usr/bin/env python3
"""
prepare_stores.py - Provision the knowledge stores and import their seed files

Adopts or creates every seeded knowledge store, records the provider handles
in the store registry and, when asked, uploads and imports the seed files.

Usage:
    python scripts/prepare_stores.py [--import-files] [--force-import] [--seeds PATH] [--verbose]
"""

import argparse
import asyncio
import sys

import structlog
from dotenv import load_dotenv

from answering.errors import AnsweringError
from answering.llm.gemini_provider import GeminiProvider
from answering.service import build_document_retrieval
from libs.common.logging import configure_logging
from libs.common.settings import Settings

# Load environment variables from .env.local
load_dotenv(".env.local")

logger = structlog.get_logger(__name__)


async def prepare(settings: Settings, import_files: bool, force_import: bool) -> list:
    provider = GeminiProvider(api_key=settings.google_api_key)
    adapter = build_document_retrieval(settings, provider)
    store_names = await adapter.prepare_stores(import_files=import_files, force_import=force_import)
    for seed in adapter.seeds:
        if seed.sample_questions:
            logger.info("Try asking", store=seed.display_name, questions=seed.sample_questions)
    return store_names


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Provision knowledge stores and import seed files")
    parser.add_argument("--import-files", action="store_true", help="Upload and import the seed files")
    parser.add_argument("--force-import", action="store_true", help="Import seed files even if already imported")
    parser.add_argument("--seeds", type=str, default=None, help="JSON file with store seeds (default: built-in seed)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)

    overrides = {"log_level": "DEBUG"} if args.verbose else {}
    if args.seeds:
        overrides["store_seeds_path"] = args.seeds
    settings = Settings(**overrides)
    configure_logging(settings.log_level, json_logs=False)

    try:
        store_names = asyncio.run(prepare(settings, args.import_files or args.force_import, args.force_import))
    except AnsweringError as e:
        logger.error("Store preparation failed", error=str(e))
        return 1

    logger.info("Stores prepared", stores=store_names, registry=settings.store_registry_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
