"""Modal dialogs."""

from .authorize import AuthorizeModal
from .text_prompt import TextPromptModal

__all__ = [
    "AuthorizeModal",
    "TextPromptModal",
]
