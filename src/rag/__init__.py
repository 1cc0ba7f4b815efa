"""
RAG (Retrieval-Augmented Generation) модуль.

Компоненты:
    - vector_db: TF-IDF векторное хранилище документов
    - retriever: Поиск релевантных чанков по косинусному сходству
    - indexer: Загрузка документов из директории и разбиение на чанки
"""

from .vector_db import VectorDB, Document
from .retriever import DocumentRetriever, SearchResult
from .indexer import DocumentIndexer, split_into_chunks, load_text_files

__all__ = [
    "VectorDB",
    "Document",
    "DocumentRetriever",
    "SearchResult",
    "DocumentIndexer",
    "split_into_chunks",
    "load_text_files",
]
