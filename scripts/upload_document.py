#!/usr/bin/env python3
"""
upload_document.py - Upload a local document into the primary knowledge store

Usage:
    python scripts/upload_document.py PATH [--display-name NAME] [--mime-type TYPE]
"""

import argparse
import asyncio
import os
import sys

import structlog
from dotenv import load_dotenv

from answering.errors import AnsweringError
from answering.llm.gemini_provider import GeminiProvider
from answering.models import FileDocument
from answering.service import build_document_retrieval, detect_mime_type
from libs.common.logging import configure_logging
from libs.common.settings import Settings

load_dotenv(".env.local")

logger = structlog.get_logger(__name__)


async def upload(settings: Settings, document: FileDocument) -> None:
    adapter = build_document_retrieval(settings, GeminiProvider(api_key=settings.google_api_key))
    await adapter.upload_documents([document])


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Upload a document into the primary knowledge store")
    parser.add_argument("path", help="Local file to upload")
    parser.add_argument("--display-name", default=None, help="Name shown in citations (default: file name)")
    parser.add_argument("--mime-type", default=None, help="MIME type (default: detected from extension)")

    args = parser.parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level, json_logs=False)

    if not os.path.isfile(args.path):
        logger.error("File not found", path=args.path)
        return 1

    document = FileDocument(
        path=args.path,
        display_name=args.display_name or os.path.basename(args.path),
        mime_type=args.mime_type or detect_mime_type(args.path),
    )
    try:
        asyncio.run(upload(settings, document))
    except AnsweringError as e:
        logger.error("Upload failed", path=args.path, error=str(e))
        return 1

    logger.info("Document uploaded", display_name=document.display_name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
