"""
Completion service: the core's narrow contract with the language model.
"""

from .service import CompletionService, Content, LLMCompletionService, ModelClass

__all__ = [
    "CompletionService",
    "Content",
    "LLMCompletionService",
    "ModelClass",
]
