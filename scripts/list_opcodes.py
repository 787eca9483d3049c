from __future__ import annotations

import argparse
import json
import sys
from typing import Dict, List

from c166.decoding import decode_map


def _rows() -> List[Dict[str, object]]:
    rows = []
    for entry in decode_map.iter_opcodes():
        rows.append(
            {
                "opcode": entry.opcode,
                "mnemonic": entry.mnemonic,
                "family": entry.family,
                "length": entry.length,
                "flags": entry.flags,
                "operation": entry.operation,
            }
        )
    return rows


def _main() -> None:
    parser = argparse.ArgumentParser(description="List the C166 opcode table")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of a human-readable table",
    )
    parser.add_argument(
        "--family",
        help="Only list opcodes of this family (alu, move, jump, ...)",
    )
    args = parser.parse_args()

    rows = _rows()
    if args.family:
        rows = [row for row in rows if row["family"] == args.family]

    if args.json:
        json.dump(rows, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return

    for row in rows:
        flags = row["flags"] or "-"
        print(
            f"0x{row['opcode']:02X}  {row['mnemonic']:<7} {row['family']:<9} "
            f"len={row['length']}  flags={flags}"
        )
    print(f"{len(rows)} opcodes")


if __name__ == "__main__":
    _main()
