"""
Шаблон промпта для instruct-модели (формат Mistral [INST]).

Содержит:
- Заголовок блока контекста
- Сборку промпта из вопроса и найденных чанков
"""

from typing import List


CONTEXT_HEADER = "Using the following context to answer the question:\n\n"

PROMPT_TEMPLATE = "<s>[INST] {context}Question: {query} [/INST]"


def format_context(context: List[str]) -> str:
    """
    Форматирование найденных чанков для вставки в промпт.

    Args:
        context: Тексты чанков, от самого релевантного

    Returns:
        Пустая строка, если контекста нет, иначе заголовок
        и чанки, разделенные пустой строкой
    """
    if not context:
        return ""
    return CONTEXT_HEADER + "\n\n".join(context) + "\n\n"


def build_prompt(query: str, context: List[str]) -> str:
    """
    Сборка промпта для модели.

    Args:
        query: Вопрос пользователя
        context: Найденные чанки базы знаний

    Returns:
        Готовый промпт в формате <s>[INST] ... [/INST]
    """
    return PROMPT_TEMPLATE.format(context=format_context(context), query=query)
