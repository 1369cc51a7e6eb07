"""pero - converse with an LLM in a single plain text document."""

__version__ = "0.1.0"

from pero.config import Config
from pero.run_chat import ChatRunOptions, run_chat

__all__ = ["ChatRunOptions", "Config", "run_chat", "__version__"]
