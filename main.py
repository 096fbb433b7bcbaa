"""SourceRank - ranked sources for a free-text query

Simple CLI for running one query through the answer pipeline.
"""

import argparse
import asyncio

from sourcerank.agents.content_fetcher import ContentFetcher
from sourcerank.agents.content_indexer import ContentIndexer
from sourcerank.agents.pipeline import AnswerPipeline
from sourcerank.agents.query_interpreter import QueryInterpreter
from sourcerank.agents.ranker import Ranker
from sourcerank.agents.retriever import Retriever
from sourcerank.llm_client import get_client
from sourcerank.services.logger import configure_logging


def build_pipeline(model: str | None = None, index_scope: str | None = None) -> AnswerPipeline:
    if model is None and index_scope is None:
        return AnswerPipeline.from_settings()
    chat = get_client()
    return AnswerPipeline(
        interpreter=QueryInterpreter(client=chat, model=model),
        retriever=Retriever(),
        fetcher=ContentFetcher(),
        indexer=ContentIndexer(scope=index_scope),
        ranker=Ranker(client=chat, model=model),
    )


async def run_query(query: str, model: str | None = None, index_scope: str | None = None, show_stream: bool = False):
    """Run the pipeline on the given query and print its progress."""
    print(f"Query: {query}")
    print("-" * 50)

    pipeline = build_pipeline(model, index_scope)

    async for event in pipeline.run(query):
        event_type = event.event.value
        data = event.data

        if event_type == "timing":
            print(f"  [t] {data['milestone']}: {data['seconds']:.2f}s")

        elif event_type == "intent":
            print(f"\n[*] Topic: {data['topic']} | media: {data['media_type']} | wanted: {data['desired_count']}")

        elif event_type == "source_batch":
            print(f"\n[+] {len(data['sources'])} web sources")

        elif event_type == "media_batch":
            print(f"[+] {len(data['items'])} validated {data['kind']}")

        elif event_type == "fragment":
            if show_stream:
                print(data["text"], end="", flush=True)
            else:
                print(".", end="", flush=True)

        elif event_type == "stream_end":
            print()

        elif event_type == "status" and data["status"] == "done":
            results = data.get("results", [])
            print(f"\n{'='*50}")
            print(f"RANKED SOURCES ({len(results)})")
            print(f"{'='*50}")
            for item in results:
                print(f"{item['position']}. {item['title'] or item['link']}")
                print(f"   {item['link']}")
                if item.get("reasoning"):
                    print(f"   {item['reasoning']}")

        elif event_type == "status":
            print(f"\n[!] Failed during {data.get('stage')}: {data.get('message', 'Unknown error')}")


def main():
    parser = argparse.ArgumentParser(description="SourceRank query runner")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--query", "-q", help="Free-text query")
    mode.add_argument("--serve", action="store_true", help="Run the HTTP API instead of a single query")
    parser.add_argument("--port", type=int, default=8000, help="Port for --serve")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument("--index-scope", choices=["first", "all"], help="Which fetched pages feed the similarity index")
    parser.add_argument("--show-stream", action="store_true", help="Print raw ranking fragments as they arrive")

    args = parser.parse_args()

    configure_logging()
    if args.serve:
        import uvicorn

        uvicorn.run("sourcerank.main:app", host="0.0.0.0", port=args.port)
        return
    asyncio.run(run_query(args.query, args.model, args.index_scope, args.show_stream))


if __name__ == "__main__":
    main()
