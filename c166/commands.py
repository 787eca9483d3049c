"""Binary Ninja menu commands for hand-placed addressing overrides.

Every command takes the store explicitly (falling back to the shared one), so
they can be driven with a fake view that only records calls.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Optional

from .errors import MalformedPersistedState
from .state import ExtensionStateStore

logger = logging.getLogger(__name__)

METADATA_KEY = "c166_state"

IntPrompt = Callable[[str, str], Optional[int]]


def _default_store() -> ExtensionStateStore:
    from .arch import shared_store

    return shared_store()


def _default_prompt(prompt: str, title: str) -> Optional[int]:
    from binaryninja.interaction import get_int_input  # type: ignore

    return get_int_input(prompt, title)


def instruction_slots(start: int, length: int) -> Iterator[int]:
    """2-byte aligned addresses covered by a selection."""
    return iter(range(start & ~1, start + length, 2))


def apply_extp(
    view,
    start: int,
    length: int,
    store: Optional[ExtensionStateStore] = None,
    prompt: Optional[IntPrompt] = None,
) -> int:
    store = store if store is not None else _default_store()
    page = (prompt or _default_prompt)("Page (pag10)", "Apply EXTP")
    if page is None:
        return 0
    count = 0
    for addr in instruction_slots(start, length):
        store.set_page(addr, page, 0)
        logger.info("EXTP #%#x applied at %#x", page & 0x3FF, addr)
        count += 1
    view.reanalyze()
    return count


def apply_exts(
    view,
    start: int,
    length: int,
    store: Optional[ExtensionStateStore] = None,
    prompt: Optional[IntPrompt] = None,
) -> int:
    store = store if store is not None else _default_store()
    segment = (prompt or _default_prompt)("Segment (seg8)", "Apply EXTS")
    if segment is None:
        return 0
    count = 0
    for addr in instruction_slots(start, length):
        store.set_segment(addr, segment, 0)
        logger.info("EXTS #%#x applied at %#x", segment & 0xFF, addr)
        count += 1
    view.reanalyze()
    return count


def apply_extr(
    view,
    start: int,
    length: int,
    store: Optional[ExtensionStateStore] = None,
) -> int:
    store = store if store is not None else _default_store()
    count = 0
    for addr in instruction_slots(start, length):
        store.set_register_bank(addr, 0)
        logger.info("EXTR applied at %#x", addr)
        count += 1
    view.reanalyze()
    return count


def apply_dpp(
    view,
    start: int,
    length: int,
    store: Optional[ExtensionStateStore] = None,
    prompt: Optional[IntPrompt] = None,
) -> int:
    store = store if store is not None else _default_store()
    ask = prompt or _default_prompt
    dpp = []
    for index in range(4):
        value = ask(f"DPP{index} page", "Apply DPP")
        if value is None:
            return 0
        dpp.append(value)
    count = store.set_custom_dpp_range(start, start + length - 1, dpp)
    logger.info(
        "DPP (%s) applied to %d instructions in %#x..%#x",
        ", ".join(f"{value & 0x3FF:#x}" for value in dpp),
        count,
        start,
        start + length,
    )
    view.reanalyze()
    return count


def save_state_map(view, store: Optional[ExtensionStateStore] = None) -> None:
    store = store if store is not None else _default_store()
    blob = store.serialize()
    view.store_metadata(METADATA_KEY, blob)
    logger.info("Saved %d extension state records", len(store))


def load_state_map(view, store: Optional[ExtensionStateStore] = None) -> bool:
    """Restore the store from the view's metadata; returns True when loaded."""
    store = store if store is not None else _default_store()
    try:
        blob = view.query_metadata(METADATA_KEY)
    except KeyError:
        logger.info("No saved extension state in this view")
        return False
    if isinstance(blob, str):
        blob = blob.encode("latin-1")
    try:
        store.deserialize(bytes(blob))
    except MalformedPersistedState as exc:
        logger.error("Ignoring saved extension state: %s", exc)
        return False
    logger.info("Loaded %d extension state records", len(store))
    view.reanalyze()
    return True


def register_commands() -> None:
    from binaryninja import PluginCommand  # type: ignore

    PluginCommand.register_for_range(
        "C166\\Apply EXTP #pag10",
        "Treat the selected instructions as EXTP-prefixed",
        apply_extp,
    )
    PluginCommand.register_for_range(
        "C166\\Apply EXTS #seg8",
        "Treat the selected instructions as EXTS-prefixed",
        apply_exts,
    )
    PluginCommand.register_for_range(
        "C166\\Apply EXTR",
        "Treat the selected instructions as EXTR-prefixed",
        apply_extr,
    )
    PluginCommand.register_for_range(
        "C166\\Apply DPP",
        "Use custom DPP0..DPP3 values for the selected instructions",
        apply_dpp,
    )
    PluginCommand.register(
        "C166\\Save state map",
        "Store the extension state table in the database",
        save_state_map,
    )
    PluginCommand.register(
        "C166\\Load state map",
        "Restore the extension state table from the database",
        load_state_map,
    )


__all__ = [
    "METADATA_KEY",
    "instruction_slots",
    "apply_extp",
    "apply_exts",
    "apply_extr",
    "apply_dpp",
    "save_state_map",
    "load_state_map",
    "register_commands",
]
