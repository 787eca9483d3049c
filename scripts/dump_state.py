from __future__ import annotations

import argparse
import json
import sys

from c166.errors import MalformedPersistedState
from c166.state import ExtensionStateStore


def _main() -> int:
    parser = argparse.ArgumentParser(
        description="Print a serialized C166 extension state map"
    )
    parser.add_argument("path", help="File written by ExtensionStateStore.save()")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of a human-readable table",
    )
    args = parser.parse_args()

    store = ExtensionStateStore()
    try:
        store.load(args.path)
    except MalformedPersistedState as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json:
        json.dump(
            [
                {
                    "address": addr,
                    "kind": int(state.kind),
                    "remaining": state.remaining,
                    "page10": state.page10,
                    "segment8": state.segment8,
                    "dpp": list(state.dpp),
                }
                for addr, state in store.items()
            ],
            sys.stdout,
            indent=2,
        )
        sys.stdout.write("\n")
        return 0

    for addr, state in store.items():
        kinds = "|".join(
            kind.name for kind in type(state.kind) if kind and state.has(kind)
        )
        dpp = ",".join(f"{value:#x}" for value in state.dpp)
        print(
            f"{addr:#08x}  {kinds:<20} remaining={state.remaining} "
            f"page={state.page10:#x} seg={state.segment8:#x} dpp={dpp}"
        )
    print(f"{len(store)} records")
    return 0


if __name__ == "__main__":
    sys.exit(_main())
