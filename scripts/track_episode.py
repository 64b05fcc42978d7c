#!/usr/bin/env python3
"""Queue summaries against a running backend and print state changes until they settle.

    python scripts/track_episode.py EPISODE_ID [EPISODE_ID ...]
    python scripts/track_episode.py --import-json episode.json

episode.json holds the /episodes/import body: {"episode": {...}, "podcast": {...}}.
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from podbrief.models.schemas import ImportEpisodeRequest
from podbrief.tracker.queue import SummarizeStatusTracker


async def _watch(tracker: SummarizeStatusTracker, episode_ids, interval: float) -> int:
    last = {}
    while True:
        pending = 0
        for eid in episode_ids:
            item = tracker.get_queue_item(eid)
            if item is None:
                continue
            view = (item.state, tracker.get_queue_position(eid), item.error)
            if last.get(eid) != view:
                pos = f" #{view[1] + 1} in line" if view[1] >= 0 else ""
                err = f" ({item.error})" if item.error else ""
                print(f"{eid}: {item.state}{pos}{err}")
                last[eid] = view
            if not item.is_terminal:
                pending += 1
        if not pending:
            break
        await asyncio.sleep(interval)
    items = [tracker.get_queue_item(eid) for eid in episode_ids]
    return sum(1 for item in items if item is not None and item.state == "failed")


async def run(args) -> int:
    async with SummarizeStatusTracker.create(args.backend_url) as tracker:
        episode_ids = list(args.episode_ids)
        if args.import_json:
            body = ImportEpisodeRequest.model_validate(json.loads(Path(args.import_json).read_text(encoding="utf-8")))
            result = await tracker.summarize_external(body.episode, body.podcast)
            if not result.ok:
                print(f"import_failed: {result.error}")
                return 2
            print(f"imported {body.episode.external_id} as {result.episode_id}")
            episode_ids.append(result.episode_id)
        for eid in episode_ids:
            tracker.add_to_queue(eid)
        if not episode_ids:
            print("nothing to track")
            return 1
        failed = await _watch(tracker, episode_ids, interval=0.5)
        return 1 if failed else 0


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("episode_ids", nargs="*", help="internal episode ids to summarize")
    parser.add_argument("--import-json", help="file with an /episodes/import body to import first")
    parser.add_argument("--backend-url", default=None, help="defaults to BACKEND_URL")
    sys.exit(asyncio.run(run(parser.parse_args())))


if __name__ == "__main__":
    main()
