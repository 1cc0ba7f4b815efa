"""
RAG Assistant - ответы на вопросы по локальным документам.

Модули:
    - main: Точка входа и консольный интерфейс
    - llm_client: Клиент для локальной модели через Ollama
    - rag: Подмодуль для RAG функциональности
    - prompts: Шаблон промпта для instruct-модели
"""

__version__ = "1.0.0"
__author__ = "RAG Team"
