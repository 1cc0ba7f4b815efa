"""
Модуль поиска релевантных документов.

Отвечает за:
- Наполнение базы знаний
- Поиск по косинусному сходству TF-IDF векторов
- Возврат топ-K релевантных чанков для промпта
"""

from typing import List, Optional
from dataclasses import dataclass

from .vector_db import VectorDB


@dataclass
class SearchResult:
    """Результат поиска."""
    document_id: str
    text: str
    source_file: Optional[str]
    similarity_score: float


class DocumentRetriever:
    """
    Поиск релевантных документов в RAG системе.

    Обеспечивает:
    - Добавление текстов в базу знаний
    - Поиск по косинусному сходству
    - Возврат топ-K наиболее релевантных чанков
    """

    DEFAULT_TOP_K = 3

    def __init__(self, vector_db: Optional[VectorDB] = None) -> None:
        """
        Инициализация retriever'а.

        Args:
            vector_db: Векторное хранилище (по умолчанию создается пустое)
        """
        self._vector_db = vector_db if vector_db is not None else VectorDB()

    @property
    def vector_db(self) -> VectorDB:
        return self._vector_db

    def add_to_knowledge_base(self, content: str, source: Optional[str] = None) -> str:
        """
        Добавление текста в базу знаний.

        Args:
            content: Текст документа или чанка
            source: Путь к исходному файлу

        Returns:
            id добавленного документа

        Raises:
            EmptyDocumentError: Если текст пустой
        """
        if not content or not content.strip():
            raise EmptyDocumentError("Нельзя добавить пустой документ")
        return self._vector_db.add_document(content, source=source).id

    def retrieve(self, query: str, top_k: int = DEFAULT_TOP_K) -> List[str]:
        """
        Получение текстов наиболее релевантных чанков.

        Args:
            query: Вопрос пользователя
            top_k: Количество результатов (по умолчанию 3)

        Returns:
            Тексты чанков, от самого релевантного
        """
        return [result.text for result in self.search(query, top_k)]

    def search(self, query: str, top_k: int = DEFAULT_TOP_K) -> List[SearchResult]:
        """
        Поиск релевантных чанков по запросу.

        Args:
            query: Поисковый запрос
            top_k: Количество результатов (по умолчанию 3)

        Returns:
            Список SearchResult, отсортированный по релевантности
        """
        return [
            SearchResult(
                document_id=doc.id,
                text=doc.content,
                source_file=doc.source,
                similarity_score=score
            )
            for doc, score in self._vector_db.search_similar(query, top_k)
        ]

    def format_results_for_llm(self, results: List[SearchResult]) -> str:
        """
        Форматирование результатов поиска для вывода.

        Формат:
        Найденные документы:

        [1] Источник: docs/file.txt (релевантность: 0.95)
        <текст чанка>

        [2] ...
        """
        if not results:
            return "Документы не найдены."

        output = "Найденные документы:\n\n"
        for i, result in enumerate(results, 1):
            source = result.source_file or "<без источника>"
            output += f"[{i}] Источник: {source} "
            output += f"(релевантность: {result.similarity_score:.2f})\n"
            output += f"{result.text}\n\n"
        return output.strip()

    def get_stats(self) -> dict:
        """
        Статистика базы знаний.

        Returns:
            Словарь со статистикой:
            - total_documents: количество документов (чанков)
            - vocabulary_size: размер словаря
            - source_files: список исходных файлов
        """
        documents = self._vector_db.documents
        return {
            "total_documents": len(documents),
            "vocabulary_size": self._vector_db.vocabulary_size,
            "source_files": sorted(set(d.source for d in documents if d.source))
        }

    def save(self, path: str, docs_dir: Optional[str] = None) -> None:
        self._vector_db.save(path, docs_dir=docs_dir)

    def load(self, path: str) -> None:
        """Замена текущей базы знаний на сохраненную в файле."""
        self._vector_db = VectorDB.load(path)

    @property
    def docs_dir(self) -> Optional[str]:
        """Директория документов, из которой построена база знаний."""
        return self._vector_db.docs_dir

    def clear(self) -> None:
        self._vector_db.clear()


class RetrieverError(Exception):
    """Базовый класс ошибок retriever'а."""
    pass


class EmptyDocumentError(RetrieverError):
    """Попытка добавить пустой документ."""
    pass
