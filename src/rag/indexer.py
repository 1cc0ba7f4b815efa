"""
Модуль индексации документов.

Отвечает за:
- Сканирование директории с документами
- Чтение текстовых файлов
- Разбиение текста на чанки по границам предложений
- Наполнение базы знаний и сохранение индекса
"""

import os
import re
from typing import Iterable, List, TYPE_CHECKING
from dataclasses import dataclass

if TYPE_CHECKING:
    from .retriever import DocumentRetriever


_SENTENCE_END_RE = re.compile(r"[.!?]")


@dataclass
class IndexingResult:
    """Результат индексации."""
    total_files: int
    total_chunks: int
    indexed_files: List[str]
    errors: List[str]


def ensure_dir(path: str) -> None:
    """Создание директории (вместе с родительскими), если ее нет."""
    os.makedirs(path, exist_ok=True)


def read_text_file(file_path: str) -> str:
    """
    Чтение текстового файла.

    Сначала пробуем UTF-8, при ошибке декодирования - latin-1.
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return f.read()
    except UnicodeDecodeError:
        with open(file_path, 'r', encoding='latin-1') as f:
            return f.read()


def find_text_files(dir_path: str, extensions: Iterable[str]) -> List[str]:
    """
    Рекурсивный поиск файлов с заданными расширениями.

    Returns:
        Отсортированный список путей (расширение сравнивается без учета регистра)
    """
    wanted = {ext.lower() for ext in extensions}
    found_files: List[str] = []

    for root, dirs, files in os.walk(dir_path):
        for filename in files:
            ext = os.path.splitext(filename)[1].lower()
            if ext in wanted:
                found_files.append(os.path.join(root, filename))

    found_files.sort()
    return found_files


def load_text_files(dir_path: str, extensions: Iterable[str] = (".txt",)) -> List[str]:
    """
    Загрузка содержимого всех текстовых файлов директории (рекурсивно).

    Args:
        dir_path: Директория с документами
        extensions: Допустимые расширения

    Returns:
        Список содержимого файлов; если директории нет - она создается
        и возвращается пустой список
    """
    if not os.path.exists(dir_path):
        ensure_dir(dir_path)
        return []

    return [read_text_file(path) for path in find_text_files(dir_path, extensions)]


def split_into_chunks(text: str, max_chars: int) -> List[str]:
    """
    Разбиение текста на чанки по границам предложений.

    Args:
        text: Исходный текст
        max_chars: Максимальная длина чанка в символах

    Returns:
        Список чанков, каждый не длиннее max_chars

    Алгоритм:
    - Разделить текст по '.', '!', '?'
    - Каждое непустое предложение завершить точкой
    - Склеивать предложения через пробел, пока чанк помещается в max_chars
    - Слишком длинное предложение разбить по словам
    """
    if max_chars < 2:
        raise ValueError(f"max_chars должен быть не меньше 2, получено {max_chars}")

    chunks: List[str] = []
    current_chunk = ""
    current_length = 0

    for sentence in _SENTENCE_END_RE.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue

        # -1: место под завершающую точку
        for piece in _split_long_sentence(sentence, max_chars - 1):
            piece_len = len(piece)
            if current_length + piece_len + 2 > max_chars and current_chunk:
                chunks.append(current_chunk.strip())
                current_chunk = ""
                current_length = 0

            if current_chunk:
                current_chunk += " "
                current_length += 1
            current_chunk += piece + "."
            current_length += piece_len + 1

    if current_chunk:
        chunks.append(current_chunk.strip())

    return chunks


def _split_long_sentence(sentence: str, limit: int) -> List[str]:
    """Разбиение предложения длиннее limit на части по словам."""
    if len(sentence) <= limit:
        return [sentence]

    pieces: List[str] = []
    current = ""
    for word in sentence.split():
        while len(word) > limit:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(word[:limit])
            word = word[limit:]
        if not word:
            continue
        if current and len(current) + 1 + len(word) > limit:
            pieces.append(current)
            current = ""
        current = f"{current} {word}" if current else word
    if current:
        pieces.append(current)
    return pieces


class DocumentIndexer:
    """
    Индексатор документов для RAG системы.

    Обеспечивает:
    - Сканирование директории с документами
    - Чтение файлов .txt, .md
    - Разбиение текста на чанки по предложениям
    - Сохранение базы знаний в JSON
    """

    SUPPORTED_EXTENSIONS = (".txt", ".md")
    DEFAULT_MAX_CHUNK_CHARS = 500

    def __init__(self, docs_dir: str, index_path: str,
                 max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
                 extensions: Iterable[str] = SUPPORTED_EXTENSIONS) -> None:
        """
        Инициализация индексатора.

        Args:
            docs_dir: Путь к директории с документами
            index_path: Путь к файлу для сохранения базы знаний
            max_chunk_chars: Максимальный размер чанка в символах (по умолчанию 500)
            extensions: Расширения индексируемых файлов

        Действия:
        - Сохранить пути и параметры
        - Создать директорию docs, если ее нет
        """
        self._docs_dir = docs_dir
        self._index_path = index_path
        self._max_chunk_chars = max_chunk_chars
        self._extensions = tuple(extensions)

        ensure_dir(docs_dir)

    @property
    def docs_dir(self) -> str:
        return self._docs_dir

    @property
    def index_path(self) -> str:
        return self._index_path

    def index_all(self, retriever: 'DocumentRetriever') -> IndexingResult:
        """
        Индексация всех документов в директории.

        Args:
            retriever: Retriever, чья база знаний будет перестроена

        Returns:
            Результат индексации со статистикой

        Действия:
        - Очистить базу знаний
        - Для каждого файла прочитать содержимое, разбить на чанки
          и добавить чанки в базу знаний
        - Ошибки отдельных файлов собрать, не прерывая индексацию
        - Сохранить базу знаний в JSON файл
        """
        files = self.scan_documents()
        errors: List[str] = []
        error_files: set = set()
        total_chunks = 0

        retriever.clear()
        print(f"Найдено файлов для индексации: {len(files)}")

        for file_idx, file_path in enumerate(files):
            print(f"Обработка файла {file_idx + 1}/{len(files)}: {file_path}")
            try:
                text = self.read_document(file_path)
                chunks = split_into_chunks(text, self._max_chunk_chars)
                for chunk in chunks:
                    retriever.add_to_knowledge_base(chunk, source=file_path)
                total_chunks += len(chunks)
                print(f"  Создано чанков: {len(chunks)}")
            except (OSError, ValueError) as e:
                errors.append(f"{file_path}: {e}")
                error_files.add(file_path)
                print(f"  Ошибка: {e}")

        retriever.save(self._index_path, docs_dir=os.path.abspath(self._docs_dir))
        print(f"Индекс сохранён: {total_chunks} чанков")

        return IndexingResult(
            total_files=len(files),
            total_chunks=total_chunks,
            indexed_files=[f for f in files if f not in error_files],
            errors=errors
        )

    def scan_documents(self) -> List[str]:
        """
        Сканирование директории на наличие документов.

        Returns:
            Отсортированный список путей к файлам поддерживаемых форматов
        """
        return find_text_files(self._docs_dir, self._extensions)

    def read_document(self, file_path: str) -> str:
        """
        Чтение содержимого документа.

        Raises:
            FileNotFoundError: Если файл не найден
        """
        return read_text_file(file_path).strip()

    def is_index_exists(self) -> bool:
        return os.path.exists(self._index_path)
