"""actionpin — resolve pinned GitHub Action references to their latest versions."""

__version__ = "0.1.0"
