import sys
import importlib.util
from pathlib import Path

# Ensure the plugin directory is available on ``sys.path`` so that
# absolute imports like ``c166`` work when the plugin is loaded
# directly by Binary Ninja.
_plugin_dir = str(Path(__file__).resolve().parent)
if _plugin_dir not in sys.path:
    sys.path.insert(0, _plugin_dir)


def module_exists(module_name):
    if module_name in sys.modules:
        return True
    try:
        return importlib.util.find_spec(module_name) is not None
    except (ValueError, ImportError):
        return False


# we want to only run this on a real Binary Ninja installation,
# and expect __package__ to be set by Binary Ninja.
if module_exists("binaryninja") and __package__:
    from .c166.arch import register_all
    from .c166.commands import register_commands

    register_all()
    register_commands()
