"""Binary Ninja support for the Infineon/ST C166 family (C166, ST10, XC16x)."""

from .config import VARIANTS, CpuVariant, get_variant  # noqa: F401
from .errors import (  # noqa: F401
    C166Error,
    InstructionTooShort,
    MalformedPersistedState,
    UnknownOpcode,
    UnsupportedVariant,
)
from .state import ExtensionState, ExtensionStateStore, ExtKind  # noqa: F401

__all__ = [
    "VARIANTS",
    "CpuVariant",
    "get_variant",
    "C166Error",
    "InstructionTooShort",
    "MalformedPersistedState",
    "UnknownOpcode",
    "UnsupportedVariant",
    "ExtensionState",
    "ExtensionStateStore",
    "ExtKind",
]
