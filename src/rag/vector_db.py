"""
Модуль векторного хранилища документов.

Отвечает за:
- Токенизацию текста
- Построение TF-IDF векторов
- Поиск похожих документов по косинусному сходству
- Сохранение и загрузку базы знаний в JSON
"""

import json
import math
import os
import re
import unicodedata
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field

import numpy as np


STOP_WORDS = frozenset([
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
    "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
    "to", "was", "were", "will", "with",
])

_NON_WORD_RE = re.compile(r"[^\w\s]")


@dataclass
class Document:
    """Документ базы знаний."""
    id: str
    content: str
    source: Optional[str] = None
    tokens: List[str] = field(default_factory=list, repr=False, compare=False)


class VectorDB:
    """
    Векторное хранилище на основе TF-IDF.

    Обеспечивает:
    - Добавление документов с обновлением словаря и IDF
    - Векторизацию запросов тем же словарем
    - Поиск топ-K документов по косинусному сходству
    """

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self._vocabulary: Dict[str, int] = {}
        self._doc_freq: Dict[str, int] = {}
        self._idf_values: Dict[str, float] = {}
        self._matrix: Optional[np.ndarray] = None
        # Директория документов, из которой построен индекс
        self.docs_dir: Optional[str] = None

    def __len__(self) -> int:
        return len(self._documents)

    @property
    def documents(self) -> List[Document]:
        """Документы в порядке добавления."""
        return list(self._documents.values())

    @property
    def vocabulary_size(self) -> int:
        return len(self._vocabulary)

    def get_document(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def add_document(self, content: str, source: Optional[str] = None) -> Document:
        """
        Добавление документа в хранилище.

        Args:
            content: Текст документа
            source: Путь к исходному файлу (если есть)

        Returns:
            Сохраненный документ с присвоенным id

        Действия:
        - Токенизировать текст
        - Дополнить словарь новыми терминами
        - Обновить документные частоты и пересчитать IDF
        """
        return self._insert(str(uuid.uuid4()), content, source)

    def _insert(self, document_id: str, content: str,
                source: Optional[str]) -> Document:
        tokens = self.tokenize(content)
        document = Document(
            id=document_id,
            content=content,
            source=source,
            tokens=tokens
        )

        for token in tokens:
            if token not in self._vocabulary:
                self._vocabulary[token] = len(self._vocabulary)

        for token in set(tokens):
            self._doc_freq[token] = self._doc_freq.get(token, 0) + 1

        self._documents[document.id] = document
        self._update_idf_values()
        return document

    def search_similar(self, query: str, top_k: int) -> List[Tuple[Document, float]]:
        """
        Поиск документов, похожих на запрос.

        Args:
            query: Текст запроса
            top_k: Максимальное количество результатов

        Returns:
            Список пар (документ, сходство), по убыванию сходства
        """
        if top_k <= 0 or not self._documents:
            return []

        query_vector = self.calculate_tfidf(self.tokenize(query))
        matrix = self._document_matrix()

        similarities = [
            self.cosine_similarity(row, query_vector) for row in matrix
        ]

        # sorted() стабилен: при равенстве сохраняется порядок добавления
        ranked = sorted(
            zip(self._documents.values(), similarities),
            key=lambda pair: pair[1],
            reverse=True
        )
        return ranked[:top_k]

    def tokenize(self, text: str) -> List[str]:
        """
        Разбиение текста на токены.

        Нормализация NFC, нижний регистр, все кроме букв/цифр/пробелов
        заменяется пробелом, стоп-слова отбрасываются.
        """
        text = unicodedata.normalize("NFC", text).lower()
        text = _NON_WORD_RE.sub(" ", text)
        return [token for token in text.split() if token not in STOP_WORDS]

    def calculate_tfidf(self, tokens: List[str]) -> np.ndarray:
        """
        Построение TF-IDF вектора по текущему словарю.

        Args:
            tokens: Токены текста

        Returns:
            Вектор размерности словаря (нулевой для пустого списка)
        """
        vector = np.zeros(len(self._vocabulary), dtype=np.float64)
        if not tokens:
            return vector

        term_freq: Dict[str, float] = {}
        for token in tokens:
            term_freq[token] = term_freq.get(token, 0.0) + 1.0

        tokens_count = float(len(tokens))
        for term, count in term_freq.items():
            index = self._vocabulary.get(term)
            if index is None:
                continue
            vector[index] = (count / tokens_count) * self._idf_values.get(term, 0.0)
        return vector

    @staticmethod
    def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
        """
        Косинусное сходство двух векторов.

        Returns:
            a·b / (|a|*|b|), либо 0.0 если один из векторов нулевой
        """
        norm_a = np.linalg.norm(a)
        norm_b = np.linalg.norm(b)
        if norm_a == 0 or norm_b == 0:
            return 0.0
        return float(np.dot(a, b) / (norm_a * norm_b))

    def clear(self) -> None:
        """Удаление всех документов и словаря."""
        self._documents.clear()
        self._vocabulary.clear()
        self._doc_freq.clear()
        self._idf_values.clear()
        self._matrix = None
        self.docs_dir = None

    def save(self, path: str, docs_dir: Optional[str] = None) -> None:
        """
        Сохранение базы знаний в JSON файл.

        Args:
            path: Путь к JSON файлу
            docs_dir: Директория документов; если не задана, берется self.docs_dir

        Формат JSON:
        {
            "saved_at": "ISO timestamp",
            "docs_dir": "/abs/path/docs",
            "documents": [
                {"id": "...", "content": "...", "source": "docs/file.txt"}
            ]
        }

        Векторы не сохраняются: они пересчитываются при загрузке.
        """
        if docs_dir is not None:
            self.docs_dir = docs_dir

        data = {
            "saved_at": datetime.now().isoformat(),
            "docs_dir": self.docs_dir,
            "documents": [
                {"id": doc.id, "content": doc.content, "source": doc.source}
                for doc in self._documents.values()
            ]
        }

        dir_path = os.path.dirname(path)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    @classmethod
    def load(cls, path: str) -> "VectorDB":
        """
        Загрузка базы знаний из JSON файла.

        Args:
            path: Путь к файлу, созданному save()

        Returns:
            Новое хранилище с теми же документами и id

        Raises:
            KnowledgeBaseNotFoundError: Если файл не существует
            KnowledgeBaseCorruptedError: Если файл поврежден
        """
        if not os.path.exists(path):
            raise KnowledgeBaseNotFoundError(f"Файл базы знаний не найден: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise KnowledgeBaseCorruptedError(f"Ошибка разбора базы знаний: {e}")

        if not isinstance(data, dict) or not isinstance(data.get("documents"), list):
            raise KnowledgeBaseCorruptedError("В базе знаний отсутствует список 'documents'")

        docs_dir = data.get("docs_dir")
        if docs_dir is not None and not isinstance(docs_dir, str):
            raise KnowledgeBaseCorruptedError("Поле 'docs_dir' должно быть строкой")

        db = cls()
        for position, entry in enumerate(data["documents"]):
            if not isinstance(entry, dict):
                raise KnowledgeBaseCorruptedError(f"Документ #{position} не является объектом")

            content = entry.get("content")
            if not isinstance(content, str):
                raise KnowledgeBaseCorruptedError(
                    f"Документ #{position}: поле 'content' отсутствует или не строка"
                )

            source = entry.get("source")
            if source is not None and not isinstance(source, str):
                raise KnowledgeBaseCorruptedError(f"Документ #{position}: поле 'source' не строка")

            document_id = entry.get("id") or str(uuid.uuid4())
            if not isinstance(document_id, str):
                raise KnowledgeBaseCorruptedError(f"Документ #{position}: поле 'id' не строка")
            if document_id in db._documents:
                raise KnowledgeBaseCorruptedError(f"Повторяющийся id документа: {document_id}")

            db._insert(document_id, content, source)

        db.docs_dir = docs_dir
        return db

    def _update_idf_values(self) -> None:
        """Пересчет IDF: ln(1 + N / (1 + df))."""
        doc_count = float(len(self._documents))
        self._idf_values = {
            term: math.log(1.0 + doc_count / (1.0 + self._doc_freq.get(term, 0)))
            for term in self._vocabulary
        }
        self._matrix = None

    def _document_matrix(self) -> np.ndarray:
        """Матрица TF-IDF векторов документов (кэшируется до изменения)."""
        if self._matrix is None:
            rows = [self.calculate_tfidf(doc.tokens) for doc in self._documents.values()]
            self._matrix = np.vstack(rows)
        return self._matrix


class VectorDBError(Exception):
    """Базовый класс ошибок векторного хранилища."""
    pass


class KnowledgeBaseNotFoundError(VectorDBError):
    """Файл базы знаний не найден."""
    pass


class KnowledgeBaseCorruptedError(VectorDBError):
    """Файл базы знаний поврежден."""
    pass
