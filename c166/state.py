"""Per-instruction addressing overrides (EXTP/EXTS/EXTR/ATOMIC and DPP edits).

The C166 extension instructions change how the next one to four instructions
compute their addresses.  The store keeps one entry per instruction address
instead of one per interval: lifting an instruction copies a still-running
override forward to the next instruction (see `ExtensionStateStore.propagate`).

All operations take the store's single lock for their own duration only.
Callers must not assume two separate calls observe a consistent snapshot:
Binary Ninja lifts functions on several worker threads and the last write
for an address wins.
"""

from __future__ import annotations

import enum
import logging
import struct
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .errors import MalformedPersistedState

logger = logging.getLogger(__name__)

DppVector = Tuple[int, int, int, int]


class ExtKind(enum.IntFlag):
    NONE = 0
    REGISTER = 0x01
    SEGMENT = 0x02
    PAGE = 0x04
    ATOMIC = 0x08
    CUSTOM_DPP = 0x10


# Kinds carried forward instruction by instruction.
SPANNED_KINDS = ExtKind.REGISTER | ExtKind.SEGMENT | ExtKind.PAGE | ExtKind.ATOMIC

PAGE_MASK = 0x3FF
SEGMENT_MASK = 0xFF
MAX_SPAN = 0xFF

# u64 address, u8 kind, u8 remaining, 2 pad bytes, u32 page10, u32 segment8,
# 4 x u32 dpp
RECORD = struct.Struct("<QBBxxII4I")
RECORD_SIZE = RECORD.size


@dataclass(frozen=True)
class ExtensionState:
    kind: ExtKind = ExtKind.NONE
    remaining: int = 0
    page10: int = 0
    segment8: int = 0
    dpp: DppVector = (0, 0, 0, 0)

    @property
    def is_default(self) -> bool:
        return self.kind == ExtKind.NONE

    def has(self, kind: ExtKind) -> bool:
        return bool(self.kind & kind)


DEFAULT_STATE = ExtensionState()


def _check_span(span: int) -> int:
    if not 0 <= span <= MAX_SPAN:
        raise ValueError(f"Override span must be within 0..{MAX_SPAN}, got {span}")
    return span


def _dpp_vector(values: Iterable[int]) -> DppVector:
    vector = tuple(value & PAGE_MASK for value in values)
    if len(vector) != 4:
        raise ValueError(f"Expected four DPP values, got {len(vector)}")
    return vector  # type: ignore[return-value]


class ExtensionStateStore:
    """Address keyed table of `ExtensionState` guarded by a single lock."""

    def __init__(self, default_dpp: Iterable[int] = (0, 0, 0, 0)) -> None:
        self._lock = threading.Lock()
        self._table: Dict[int, ExtensionState] = {}
        self._default_dpp: DppVector = _dpp_vector(default_dpp)

    # -- mutation -----------------------------------------------------------

    def _upsert(self, addr: int, kind: ExtKind, remaining: int, **values) -> None:
        with self._lock:
            current = self._table.get(addr, DEFAULT_STATE)
            self._table[addr] = replace(
                current, kind=current.kind | kind, remaining=remaining, **values
            )

    def set_page(self, addr: int, page10: int, span: int) -> None:
        self._upsert(addr, ExtKind.PAGE, _check_span(span), page10=page10 & PAGE_MASK)

    def set_segment(self, addr: int, segment8: int, span: int) -> None:
        self._upsert(
            addr, ExtKind.SEGMENT, _check_span(span), segment8=segment8 & SEGMENT_MASK
        )

    def set_register_bank(self, addr: int, span: int) -> None:
        self._upsert(addr, ExtKind.REGISTER, _check_span(span))

    def set_atomic(self, addr: int, span: int) -> None:
        self._upsert(addr, ExtKind.ATOMIC, _check_span(span))

    def set_custom_dpp(self, addr: int, dpp: Iterable[int]) -> None:
        """Replace whatever is stored at ``addr`` with a custom DPP vector."""
        state = ExtensionState(kind=ExtKind.CUSTOM_DPP, dpp=_dpp_vector(dpp))
        with self._lock:
            self._table[addr] = state

    def set_custom_dpp_range(self, start: int, end: int, dpp: Iterable[int]) -> int:
        """
        Apply a custom DPP vector to every instruction slot in ``[start, end]``.

        Slots holding a register, segment, page or atomic override are left
        alone. Returns the number of addresses updated.
        """
        vector = _dpp_vector(dpp)
        state = ExtensionState(kind=ExtKind.CUSTOM_DPP, dpp=vector)
        updated = 0
        with self._lock:
            for addr in range(start & ~1, end + 1, 2):
                current = self._table.get(addr)
                if current is not None and current.kind & ~ExtKind.CUSTOM_DPP:
                    continue
                self._table[addr] = state
                updated += 1
        return updated

    def set_default_dpp(self, dpp: Iterable[int]) -> None:
        """Set the reset-time DPP vector. Call before analysis starts."""
        self._default_dpp = _dpp_vector(dpp)

    def default_dpp(self) -> DppVector:
        return self._default_dpp

    def propagate(self, addr: int, length: int) -> Optional[ExtensionState]:
        """
        Carry a running override from ``addr`` to the next instruction.

        If the entry at ``addr`` has spanned kinds with ``remaining > 0`` they
        are OR-merged into ``addr + length`` with ``remaining - 1``. Returns
        the state written at the next address, or None when nothing was
        carried forward.
        """
        with self._lock:
            current = self._table.get(addr)
            if current is None or current.remaining <= 0:
                return None
            kinds = current.kind & SPANNED_KINDS
            if not kinds:
                return None
            nxt = addr + length
            target = self._table.get(nxt, DEFAULT_STATE)
            values = {}
            if kinds & ExtKind.PAGE:
                values["page10"] = current.page10
            if kinds & ExtKind.SEGMENT:
                values["segment8"] = current.segment8
            merged = replace(
                target,
                kind=target.kind | kinds,
                remaining=current.remaining - 1,
                **values,
            )
            self._table[nxt] = merged
            return merged

    def clear(self) -> None:
        with self._lock:
            self._table.clear()

    # -- queries ------------------------------------------------------------

    def get(self, addr: int) -> ExtensionState:
        with self._lock:
            return self._table.get(addr, DEFAULT_STATE)

    def query_page(self, addr: int) -> Optional[int]:
        state = self.get(addr)
        return state.page10 if state.has(ExtKind.PAGE) else None

    def query_segment(self, addr: int) -> Optional[int]:
        state = self.get(addr)
        return state.segment8 if state.has(ExtKind.SEGMENT) else None

    def query_register_bank(self, addr: int) -> bool:
        return self.get(addr).has(ExtKind.REGISTER)

    def query_atomic(self, addr: int) -> bool:
        return self.get(addr).has(ExtKind.ATOMIC)

    def query_custom_dpp(self, addr: int) -> Optional[DppVector]:
        state = self.get(addr)
        return state.dpp if state.has(ExtKind.CUSTOM_DPP) else None

    def effective_dpp(self, addr: int) -> DppVector:
        return self.query_custom_dpp(addr) or self._default_dpp

    def __len__(self) -> int:
        with self._lock:
            return len(self._table)

    def __contains__(self, addr: object) -> bool:
        with self._lock:
            return addr in self._table

    def addresses(self) -> List[int]:
        with self._lock:
            return sorted(self._table)

    def items(self) -> List[Tuple[int, ExtensionState]]:
        with self._lock:
            return sorted(self._table.items())

    # -- persistence --------------------------------------------------------

    def serialize(self) -> bytes:
        out = bytearray()
        for addr, state in self.items():
            out += RECORD.pack(
                addr,
                int(state.kind),
                state.remaining,
                state.page10,
                state.segment8,
                *state.dpp,
            )
        return bytes(out)

    def deserialize(self, blob: bytes) -> None:
        """Replace the whole table with the records in ``blob``."""
        if len(blob) % RECORD_SIZE:
            raise MalformedPersistedState(len(blob), RECORD_SIZE)
        table: Dict[int, ExtensionState] = {}
        for fields in RECORD.iter_unpack(blob):
            addr, kind, remaining, page10, segment8, *dpp = fields
            table[addr] = ExtensionState(
                kind=ExtKind(kind),
                remaining=remaining,
                page10=page10 & PAGE_MASK,
                segment8=segment8 & SEGMENT_MASK,
                dpp=_dpp_vector(dpp),
            )
        with self._lock:
            self._table = table
        logger.debug("Loaded %d extension state records", len(table))

    def save(self, path: Union[str, Path]) -> None:
        Path(path).write_bytes(self.serialize())

    def load(self, path: Union[str, Path]) -> None:
        self.deserialize(Path(path).read_bytes())


__all__ = [
    "DppVector",
    "ExtKind",
    "ExtensionState",
    "ExtensionStateStore",
    "DEFAULT_STATE",
    "RECORD_SIZE",
    "SPANNED_KINDS",
]
