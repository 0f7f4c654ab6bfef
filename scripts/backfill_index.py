import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from memor_rag.config import get_settings
from memor_rag.container import build_container
from memor_rag.core.errors import MemorError


def _read_ids(args) -> list[str]:
    ids = list(args.note_ids)
    if args.file:
        with open(args.file, encoding="utf-8") as fh:
            ids.extend(line.strip() for line in fh if line.strip())
    return ids


async def main(note_ids: list[str]) -> int:
    settings = get_settings()
    if not settings.note_store_url:
        print("NOTE_STORE_URL is not set; nothing to backfill from.")
        return 2

    print("Initializing service container...")
    container = build_container(settings)
    await container.start()

    failed = 0
    try:
        for i, note_id in enumerate(note_ids):
            print(f"Reindexing ({i+1}/{len(note_ids)}): {note_id}")
            try:
                indexed = await container.service.reindex_note(note_id)
            except MemorError as e:
                failed += 1
                print(f"  failed: {e}")
                continue
            if not indexed:
                print("  not indexed (missing or empty note)")
    finally:
        await container.close()

    print(f"Done! {len(note_ids) - failed} ok, {failed} failed.")
    return 1 if failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Re-index notes from the note store.")
    parser.add_argument("note_ids", nargs="*", help="Note ids to reindex")
    parser.add_argument("-f", "--file", help="File with one note id per line")
    args = parser.parse_args()

    ids = _read_ids(args)
    if not ids:
        parser.error("no note ids given")

    sys.exit(asyncio.run(main(ids)))
