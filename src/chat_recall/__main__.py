"""
Command-line entry point.

Usage:
    python -m chat_recall --chat-id 42 "what did we decide about the trip?"
    python -m chat_recall --chat-id 42 --participant @alice "what is alice working on?"
    python -m chat_recall --health

Configuration via .env file or environment variables.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from dotenv import load_dotenv

from chat_recall import __version__
from chat_recall.config import Config, load_config, validate_config
from chat_recall.services.answer_synthesizer import AnswerSynthesizer
from chat_recall.services.ask_service import AskService
from chat_recall.services.confidence_gate import ConfidenceGate
from chat_recall.services.context_assembler import ContextAssembler
from chat_recall.services.embedding_service import EmbeddingService
from chat_recall.services.llm_service import OpenAIChatModel
from chat_recall.services.search_strategy import SearchStrategy
from chat_recall.storage.chroma_client import ChromaClientManager
from chat_recall.storage.collections import ChromaMessageStore, ChromaSimilarityIndex
from chat_recall.storage.models import AskResult, CommandType
from chat_recall.utils.errors import ChatRecallError
from chat_recall.utils.logging import StructuredLogger, setup_logging


def build_ask_service(config: Config) -> AskService:
    """Wire the Chroma and OpenAI adapters into an AskService."""
    client_manager = ChromaClientManager(config.chroma_host, config.chroma_port)
    embedding_service = EmbeddingService(
        api_key=config.openai_api_key,
        model=config.openai_embed_model,
        dimensions=config.openai_embed_dims,
        timeout=config.openai_timeout,
        max_retries=config.openai_max_retries
    )
    index = ChromaSimilarityIndex(
        client_manager,
        embedding_service,
        message_collection=config.message_collection,
        window_collection=config.window_collection
    )
    store = ChromaMessageStore(client_manager, collection_name=config.message_collection)
    llm = OpenAIChatModel(
        api_key=config.openai_api_key,
        model=config.openai_chat_model,
        timeout=config.openai_timeout,
        max_retries=config.openai_max_retries
    )

    return AskService(
        search_strategy=SearchStrategy(index),
        gate=ConfidenceGate(ContextAssembler(store)),
        synthesizer=AnswerSynthesizer(llm, system_prompt=config.system_prompt)
    )


def check_health(config: Config) -> dict:
    """Check ChromaDB and the embeddings API with the configured settings."""
    client_manager = ChromaClientManager(config.chroma_host, config.chroma_port)
    embedding_service = EmbeddingService(
        api_key=config.openai_api_key,
        model=config.openai_embed_model,
        dimensions=config.openai_embed_dims,
        timeout=config.openai_timeout,
        max_retries=config.openai_max_retries
    )
    try:
        checks = {
            "chroma": client_manager.health_check(),
            "embeddings": embedding_service.health_check(),
        }
    finally:
        client_manager.close()

    healthy = all(check["status"] == "healthy" for check in checks.values())
    return {"status": "healthy" if healthy else "unhealthy", **checks}


def result_to_dict(result: AskResult) -> dict:
    return {
        "reply": result.reply_text,
        "confidence": result.confidence.value,
        "confidence_reason": result.confidence_reason,
        "strategy": result.strategy,
        "included_message_ids": result.context_tracker.included_ids,
        "tokens": sum(stage.usage.total_tokens for stage in result.stages),
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chat_recall",
        description="Answer a question from a group chat's indexed history."
    )
    parser.add_argument("question", nargs="?", help="Question to answer")
    parser.add_argument("--chat-id", type=int, help="Chat to search")
    parser.add_argument("--participant", help="Participant the question is about (@username or name)")
    parser.add_argument("--days", type=int, help="Lookback window for participant messages")
    parser.add_argument("--memory", help="Long-term memory about the asker")
    parser.add_argument("--direct", action="store_true", help="Skip chat search and answer directly")
    parser.add_argument("--health", action="store_true", help="Check ChromaDB and OpenAI connectivity and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    if not args.health:
        if args.question is None:
            parser.error("the following arguments are required: question")
        if args.chat_id is None:
            parser.error("the following arguments are required: --chat-id")
    return args


async def run(args: argparse.Namespace, config: Config) -> AskResult:
    service = build_ask_service(config)
    return await service.ask(
        chat_id=args.chat_id,
        question=args.question,
        participant=args.participant,
        memory_context=args.memory,
        lookback_days=args.days if args.days is not None else config.default_lookback_days,
        command=CommandType.DIRECT_SEARCH if args.direct else CommandType.GENERAL_QUESTION
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    load_dotenv()
    args = parse_args(argv)

    try:
        config = load_config()
        validate_config(config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    log = StructuredLogger(setup_logging(config.log_level, stream=sys.stderr))

    if args.health:
        health = check_health(config)
        log.info("health_check", {"status": health["status"]})
        print(json.dumps(health, ensure_ascii=False, indent=2))
        return 0 if health["status"] == "healthy" else 1

    log.info("cli_start", {
        "version": __version__,
        "chat_id": args.chat_id,
        "participant": args.participant,
        "direct": args.direct
    })

    try:
        result = asyncio.run(run(args, config))
    except ChatRecallError as e:
        log.error("ask_failed", {"error_type": type(e).__name__, "error": str(e)})
        print(json.dumps({"error": str(e), "type": type(e).__name__}, ensure_ascii=False))
        return 1

    print(json.dumps(result_to_dict(result), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
