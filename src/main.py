"""
Главный модуль приложения RAG Assistant.

Содержит точку входа и консольный интерфейс для вопросов
к базе знаний из локальных документов.
"""

import os
import sys
from dataclasses import fields
from typing import Any, Dict, List, Optional

import yaml

from llm_client import LocalLLMClient, LLMConfig, LLMError
from rag import DocumentIndexer, DocumentRetriever
from rag.vector_db import VectorDBError


DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "llm": {},
    "rag": {
        "top_k": 3,
        "max_chunk_chars": DocumentIndexer.DEFAULT_MAX_CHUNK_CHARS,
        "index_path": os.path.join("data", "knowledge_base.json"),
        "extensions": list(DocumentIndexer.SUPPORTED_EXTENSIONS),
    },
}


def load_config(config_path: str) -> dict:
    """
    Загрузка конфигурации из YAML файла.

    Args:
        config_path: Путь к файлу конфигурации

    Returns:
        Словарь с конфигурацией

    Raises:
        FileNotFoundError: Если файл не найден
        yaml.YAMLError: Если ошибка парсинга YAML
    """
    with open(config_path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f)


def build_config(raw: Optional[dict]) -> Dict[str, Dict[str, Any]]:
    """
    Слияние пользовательской конфигурации с DEFAULT_CONFIG.

    Args:
        raw: Содержимое YAML файла (может быть None для пустого файла)

    Returns:
        Конфигурация с секциями llm и rag

    Raises:
        ConfigError: При неизвестной секции или неверном формате
    """
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError("Конфигурация должна быть словарем")

    unknown = set(raw) - set(DEFAULT_CONFIG)
    if unknown:
        raise ConfigError(f"Неизвестные секции конфигурации: {', '.join(sorted(unknown))}")

    config = {}
    for section, defaults in DEFAULT_CONFIG.items():
        values = raw.get(section) or {}
        if not isinstance(values, dict):
            raise ConfigError(f"Секция '{section}' должна быть словарем")
        config[section] = {**defaults, **values}
    return config


def build_llm_config(section: Dict[str, Any]) -> LLMConfig:
    """
    Создание LLMConfig из секции llm.

    Raises:
        ConfigError: При неизвестных параметрах
    """
    known = {f.name for f in fields(LLMConfig)}
    unknown = set(section) - known
    if unknown:
        raise ConfigError(f"Неизвестные параметры llm: {', '.join(sorted(unknown))}")
    return LLMConfig(**section)


class RAGAssistant:
    """
    Основной класс RAG ассистента.

    Координирует работу всех компонентов:
    - Индексатор документов из директории
    - Retriever для поиска релевантных чанков
    - LLM клиент для генерации ответов
    """

    def __init__(self, docs_dir: str, config_path: Optional[str] = None) -> None:
        """
        Инициализация ассистента.

        Args:
            docs_dir: Директория с документами базы знаний
            config_path: Путь к YAML конфигурации
                (по умолчанию config/rag_config.yaml, если существует)

        Действия:
        - Загрузить конфигурацию
        - Инициализировать LLM клиент, retriever и индексатор
        """
        # Определи базовую директорию проекта (относительно src/)
        self._base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

        if config_path is None:
            config_path = os.path.join(self._base_dir, 'config', 'rag_config.yaml')
            raw_config = load_config(config_path) if os.path.exists(config_path) else None
        else:
            raw_config = load_config(config_path)

        self._config = build_config(raw_config)
        rag_config = self._config["rag"]

        self._docs_dir = docs_dir
        self._top_k = int(rag_config["top_k"])

        index_path = rag_config["index_path"]
        if not os.path.isabs(index_path):
            index_path = os.path.join(self._base_dir, index_path)

        # 1. LLM Client
        self._llm_client = LocalLLMClient(build_llm_config(self._config["llm"]))

        # 2. Document Retriever
        self._retriever = DocumentRetriever()

        # 3. Document Indexer
        self._indexer = DocumentIndexer(
            docs_dir,
            index_path,
            max_chunk_chars=int(rag_config["max_chunk_chars"]),
            extensions=rag_config["extensions"]
        )

    def prepare(self) -> None:
        """
        Подготовка к работе: модель и база знаний.

        Действия:
        - Проверить наличие модели (загрузить при первом запуске)
        - Загрузить базу знаний
        """
        model_name = self._llm_client.config.model_name
        print("[LLM] Инициализация модели (при первом запуске она будет загружена)...")
        try:
            self._llm_client.ensure_model()
        except LLMError as e:
            print(f"[LLM] ПРЕДУПРЕЖДЕНИЕ: {e}")
            print("[LLM] Убедитесь, что Ollama запущен и модель загружена:")
            print(f"[LLM]   ollama pull {model_name}")

        print(f"Загрузка документов из '{self._docs_dir}'...")
        self.load_knowledge_base()

    def load_knowledge_base(self) -> bool:
        """
        Загрузка базы знаний.

        Returns:
            True если база знаний загружена

        Действия:
        - Если сохраненный индекс построен из той же директории - загрузить его
        - Иначе проиндексировать директорию с документами
        - При ошибке вывести предупреждение и продолжить с пустой базой
        """
        docs_dir = os.path.abspath(self._indexer.docs_dir)
        try:
            if self._indexer.is_index_exists():
                self._retriever.load(self._indexer.index_path)
                if self._retriever.docs_dir == docs_dir:
                    stats = self._retriever.get_stats()
                    print(f"Загружен индекс: {stats['total_documents']} чанков "
                          f"(обновить: /index)")
                    return True
                print(f"Индекс построен для другой директории "
                      f"({self._retriever.docs_dir}), переиндексация {docs_dir}")
            self._indexer.index_all(self._retriever)
        except (VectorDBError, OSError) as e:
            print(f"Предупреждение: не удалось загрузить документы: {e}")
            return False
        return True

    def start(self) -> None:
        """
        Запуск консольного интерфейса.

        Действия:
        - Вывести приветственное сообщение
        - Читать вопросы до EOF (Ctrl+D) или Ctrl+C
        - Ошибки отдельного вопроса выводить и продолжать работу
        """
        self.print_welcome()

        while True:
            try:
                user_input = input("\n> ").strip()

                if not user_input:
                    continue

                response = self.process_input(user_input)

                if response:
                    print(f"\n{response}")

            except (KeyboardInterrupt, EOFError):
                print("\n\nВыход из программы...")
                break
            except Exception as e:
                print(f"\nОшибка: {e}")

    def process_input(self, user_input: str) -> Optional[str]:
        """
        Обработка ввода пользователя.

        Args:
            user_input: Текст, введенный пользователем

        Returns:
            Ответ ассистента или None для команд без ответа
        """
        if user_input.startswith('/'):
            return self.handle_command(user_input)

        print("\nДумаю...", flush=True)
        return self.answer(user_input)

    def answer(self, query: str) -> str:
        """
        Ответ на вопрос с использованием базы знаний.

        Args:
            query: Вопрос пользователя

        Returns:
            Ответ модели

        Действия:
        - Найти top_k релевантных чанков
        - Передать вопрос и чанки в LLM
        """
        context = self._retriever.retrieve(query, self._top_k)
        return self._llm_client.generate_response(query, context)

    def handle_command(self, command: str) -> Optional[str]:
        """
        Обработка команд пользователя.

        Поддерживаемые команды:
        - /index - переиндексация документов
        - /search <запрос> - показать найденные чанки
        - /stats - статистика базы знаний
        - /help - показать справку по командам
        - /exit или /quit - выход из программы
        """
        parts = command.split(maxsplit=1)
        cmd = parts[0].lower()
        args = parts[1] if len(parts) > 1 else ""

        if cmd == '/index':
            return self._do_index()
        elif cmd == '/search':
            if not args:
                return "Использование: /search <текст>"
            results = self._retriever.search(args, top_k=self._top_k)
            return self._retriever.format_results_for_llm(results)
        elif cmd == '/stats':
            return self._format_stats()
        elif cmd == '/help':
            self.print_help()
            return None
        elif cmd in ['/exit', '/quit']:
            print("До свидания!")
            sys.exit(0)
        else:
            return f"Неизвестная команда: {cmd}. Введите /help для справки."

    def _do_index(self) -> str:
        """Запуск индексации документов."""
        print("Начинаю индексацию документов...")
        try:
            result = self._indexer.index_all(self._retriever)
        except (VectorDBError, OSError) as e:
            return f"Ошибка индексации: {e}"

        message = (f"Индексация завершена!\n"
                   f"Файлов: {result.total_files}\n"
                   f"Чанков: {result.total_chunks}\n"
                   f"Ошибок: {len(result.errors)}")
        for error in result.errors:
            message += f"\n  {error}"
        return message

    def _format_stats(self) -> str:
        stats = self._retriever.get_stats()
        lines: List[str] = [
            f"Чанков в базе знаний: {stats['total_documents']}",
            f"Размер словаря: {stats['vocabulary_size']}",
            f"Файлов: {len(stats['source_files'])}",
        ]
        lines.extend(f"  {source}" for source in stats["source_files"])
        return "\n".join(lines)

    def print_welcome(self) -> None:
        """Вывод приветственного сообщения."""
        print(f"""
╔════════════════════════════════════════════════╗
║         RAG ASSISTANT v1.0                     ║
║     Вопросы к локальной базе знаний            ║
╚════════════════════════════════════════════════╝

Модель: {self._llm_client.config.model_name} (локально, API ключ не нужен)

Команды:
  /index          - Переиндексировать документы
  /search <текст> - Показать найденные чанки
  /stats          - Статистика базы знаний
  /help           - Показать справку
  /exit           - Выход (или Ctrl+D)

Задайте вопрос!
    """)

    def print_help(self) -> None:
        """Вывод справки по командам."""
        print(f"""
Справка по командам:

  /index
    Заново индексирует все документы в {self._docs_dir}/
    Документы разбиваются на чанки по предложениям и сохраняются в индекс

  /search <текст>
    Показывает чанки, которые будут переданы модели, с оценкой релевантности

  /stats
    Показывает количество чанков, размер словаря и список файлов

  /help
    Показывает эту справку

  /exit или /quit
    Завершает работу программы

Для вопроса к базе знаний просто введите его.
    """)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Точка входа в приложение.

    Args:
        argv: Аргументы командной строки (первый - директория документов,
            по умолчанию "docs")
    """
    if argv is None:
        argv = sys.argv[1:]
    docs_dir = argv[0] if argv else "docs"

    try:
        assistant = RAGAssistant(docs_dir)
        assistant.prepare()
        assistant.start()
    except FileNotFoundError as e:
        print(f"Ошибка: не найден файл конфигурации - {e}")
        sys.exit(1)
    except (ConfigError, yaml.YAMLError) as e:
        print(f"Ошибка конфигурации: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"Критическая ошибка: {e}")
        sys.exit(1)


class ConfigError(Exception):
    """Ошибка конфигурации приложения."""
    pass


if __name__ == "__main__":
    main()
