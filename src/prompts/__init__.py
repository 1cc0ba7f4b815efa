"""
Модуль промптов для LLM.

Содержит:
    - CONTEXT_HEADER: Заголовок блока найденного контекста
    - build_prompt(): Сборка промпта из вопроса и контекста
"""

from .rag_prompt import (
    CONTEXT_HEADER,
    PROMPT_TEMPLATE,
    build_prompt,
    format_context,
)

__all__ = [
    "CONTEXT_HEADER",
    "PROMPT_TEMPLATE",
    "build_prompt",
    "format_context",
]
