import argparse

from vectorstore.chroma_store import ChromaStore


def main():
    parser = argparse.ArgumentParser(description="Print the latest vector index entries.")
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--chars", type=int, default=200, help="Content preview length")
    args = parser.parse_args()

    store = ChromaStore()
    print(f"Collection '{store.collection_name}': {store.count()} entries\n")
    for entry in store.list_recent(args.limit):
        meta = entry.metadata
        kind = "summary" if meta.get("summary_of") else "chunk"
        print(f"[{entry.id}] {meta.get('source_name')} ({kind})")
        print(f"  hash={meta.get('content_hash')} parent={meta.get('parent_hash')}")
        if entry.content:
            print("  " + entry.content[: args.chars].replace("\n", " "))
        print()


if __name__ == "__main__":
    main()
