"""Entry point: python -m relstore <ingest|state> FILE [CONFIG]

- ingest: Replay a JSON array of messages, print per-type stats
- state:  Replay a JSON array of messages, print the full normalized state
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

from relstore.config import StoreConfig, load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _load_messages(path: Path) -> list[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of messages")
    return data


async def _replay(config: StoreConfig, messages: list[dict]):
    from relstore.repository import Repository

    repo = Repository(config)
    if config.types:
        for name, type_config in config.types.items():
            repo.register(name, id_field=type_config.id_field)
    else:
        for message in messages:
            name = message.get("type")
            if name and name not in repo.type_names:
                repo.register(name)

    repo.handle_messages(messages)
    await asyncio.sleep(config.notifier.flush_delay)
    return repo


def _run(cmd: str, file_arg: str, config_arg: str | None) -> None:
    config = load_config(Path(config_arg) if config_arg else None)
    _setup_logging(config.log_level)

    messages = _load_messages(Path(file_arg))
    repo = asyncio.run(_replay(config, messages))

    result = repo.get_stats() if cmd == "ingest" else repo.get_state()
    print(json.dumps(result, ensure_ascii=False, indent=2, default=str))


def main() -> None:
    args = sys.argv[1:]
    if len(args) in (2, 3) and args[0] in ("ingest", "state"):
        _run(args[0], args[1], args[2] if len(args) == 3 else None)
    else:
        print("Usage: python -m relstore <ingest|state> FILE [CONFIG]")
        print("  ingest  — Replay messages from FILE, print per-type stats")
        print("  state   — Replay messages from FILE, print normalized state")
        sys.exit(1)


if __name__ == "__main__":
    main()
