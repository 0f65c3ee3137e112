from __future__ import annotations

import argparse
import sys

from common.logger import get_logger
from common.services import build_services
from ingestion.cleaners import strip_reasoning

log = get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Ask a question about the indexed sources (RAG over Chroma)."
    )
    parser.add_argument("question", type=str, nargs="?", help="Your question")
    parser.add_argument(
        "--refine",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Rewrite the question into a search query first (default: config)",
    )
    parser.add_argument("--k", type=int, default=None, help="Similarity search results")
    parser.add_argument("--model", type=str, default=None, help="Ollama model for the answer")
    parser.add_argument("--stream", action="store_true", help="Print the answer as it is generated")
    parser.add_argument("--show-context", action="store_true")
    parser.add_argument(
        "--no-rag", action="store_true", help="Ask the model directly, without retrieved context"
    )
    parser.add_argument(
        "--list-models", action="store_true", help="List the models available and exit"
    )
    args = parser.parse_args()
    if not args.list_models and not args.question:
        parser.error("a question is required unless --list-models is given")

    services = build_services()
    try:
        if args.list_models:
            for name in services.llm.list_models():
                print(name)
            return

        if args.no_rag:
            print("\n=== ANSWER ===\n")
            if args.stream:
                for token in services.llm.stream(args.question, model=args.model):
                    sys.stdout.write(token)
                    sys.stdout.flush()
                print()
            else:
                print(strip_reasoning(str(services.llm.ask(args.question, model=args.model))))
            return

        answerer = services.answerer()
        if args.stream:
            print("\n=== ANSWER ===\n")
            for token in answerer.ask_stream(
                args.question, refine_query=args.refine, k=args.k, model=args.model
            ):
                sys.stdout.write(token)
                sys.stdout.flush()
            print()
            return

        result = answerer.ask(
            args.question, refine_query=args.refine, k=args.k, model=args.model
        )

        if result.refined_query != result.question:
            print(f"\nSearch query: {result.refined_query}")

        if args.show_context:
            print("\n=== CONTEXT ===\n")
            print(result.context)

        print("\n=== ANSWER ===\n")
        print(result.answer)

        if result.sources:
            print("\n=== SOURCES ===\n")
            for s in result.sources:
                kind = "summary" if s.get("summary_of") else "chunk"
                print(
                    f"- {s['source_name']} (lines {s.get('from_line')}-{s.get('to_line')}) [{kind}]"
                )
    finally:
        services.close()


if __name__ == "__main__":
    main()
