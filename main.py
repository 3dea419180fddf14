"""ChainChat - multi-model chat

Simple CLI for running a single or chained query without the web service.
"""

import argparse
import asyncio
import sys

from chainchat.agents.dispatcher import CHAINED, HOSTED_REASONING_ID, MODEL_TABLE, SCRAPED_MODEL_ID
from chainchat.errors import ChatError
from chainchat.models.schemas import ChatRequest
from chainchat.services.chat_handler import ChatHandler
from chainchat.services.memory_store import InMemoryConversationStore


async def run_chat(query: str, model: str, first_model: str, second_model: str) -> int:
    """Run one chat turn and print each step."""
    print(f"Query: {query}")
    print(f"Model: {model}" + (f" ({first_model} -> {second_model})" if model == CHAINED else ""))
    print("-" * 50)

    handler = ChatHandler(InMemoryConversationStore())
    request = ChatRequest(
        query=query,
        model=model,
        first_model=first_model,
        second_model=second_model,
    )
    try:
        result = await handler.handle(request)
    except ChatError as e:
        print(f"\n[!] Error: {e.message}")
        if e.details:
            print(f"    {e.details}")
        return 1

    for i, step in enumerate(result["responses"], 1):
        print(f"\n[{i}] {step['model']} ({step['processingTime']}ms)")

    print(f"\n[*] Total: {result['totalTime']}ms")
    print(f"\n{'='*50}")
    print(result["finalOutput"])
    return 0


def main():
    choices = sorted(MODEL_TABLE) + [CHAINED]
    parser = argparse.ArgumentParser(description="ChainChat multi-model chat")
    parser.add_argument("--query", "-q", required=True, help="Prompt to send")
    parser.add_argument("--model", "-m", default=CHAINED, choices=choices, help="Model or 'chained'")
    parser.add_argument("--first", default=SCRAPED_MODEL_ID, choices=sorted(MODEL_TABLE), help="First chained model")
    parser.add_argument("--second", default=HOSTED_REASONING_ID, choices=sorted(MODEL_TABLE), help="Second chained model")

    args = parser.parse_args()

    sys.exit(asyncio.run(run_chat(args.query, args.model, args.first, args.second)))


if __name__ == "__main__":
    main()
