"""
Клиент для локальной instruct-модели.

Поддерживает:
- Локальные модели через Ollama (mistral:7b-instruct и другие)
- Автоматическую загрузку модели при первом запуске
- Генерацию ответа по вопросу и найденному контексту
"""

import os
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

import requests

from prompts import build_prompt


@dataclass
class LLMConfig:
    """Конфигурация локальной модели и параметров генерации."""
    model_name: str = "mistral:7b-instruct"
    host: str = "localhost"
    port: int = 11434
    max_tokens: int = 1000
    temperature: float = 0.7
    top_p: float = 0.9
    repeat_penalty: float = 1.1
    num_threads: Optional[int] = None  # None - все ядра CPU
    timeout: int = 120
    pull_timeout: int = 3600
    retry_attempts: int = 3
    auto_pull: bool = True


class BaseLLMClient(ABC):
    """
    Базовый абстрактный класс для LLM клиентов.

    Определяет общий интерфейс: ответ на вопрос с учетом контекста.
    """

    @abstractmethod
    def generate_response(self, query: str, context: List[str]) -> str:
        """
        Генерация ответа на вопрос.

        Args:
            query: Вопрос пользователя
            context: Найденные чанки базы знаний

        Returns:
            Текст ответа модели
        """
        pass

    def construct_prompt(self, query: str, context: List[str]) -> str:
        """Сборка промпта в формате [INST] из вопроса и контекста."""
        return build_prompt(query, context)


class LocalLLMClient(BaseLLMClient):
    """
    Клиент для локальных LLM моделей через Ollama.

    Поддерживает:
    - Проверку наличия модели и ее загрузку (/api/tags, /api/pull)
    - Генерацию через /api/generate с готовым [INST] промптом
    - Повтор запросов с экспоненциальным backoff
    """

    def __init__(self, config: Optional[LLMConfig] = None) -> None:
        """
        Инициализация клиента для локальной LLM.

        Args:
            config: Конфигурация модели (по умолчанию LLMConfig())
        """
        self._config = config if config is not None else LLMConfig()
        self._base_url = f"http://{self._config.host}:{self._config.port}"

    @property
    def config(self) -> LLMConfig:
        return self._config

    def generate_response(self, query: str, context: List[str]) -> str:
        """
        Генерация ответа на вопрос по найденному контексту.

        Args:
            query: Вопрос пользователя
            context: Тексты релевантных чанков

        Returns:
            Текст ответа модели

        Raises:
            EmptyQueryError: Если вопрос пустой
            LocalLLMConnectionError: Если Ollama недоступна после всех попыток
            LocalLLMError: При ошибке API или неожиданном ответе
        """
        if not query or not query.strip():
            raise EmptyQueryError("Вопрос не может быть пустым")

        payload = {
            "model": self._config.model_name,
            "prompt": self.construct_prompt(query, context),
            "raw": True,
            "stream": False,
            "options": self._build_options()
        }

        response_json = self._retry_with_backoff(
            self._send_request, "/api/generate", payload
        )
        return self._parse_response(response_json)

    def list_models(self) -> List[str]:
        """
        Получение списка установленных моделей.

        Returns:
            Имена моделей, известных серверу Ollama
        """
        try:
            response = requests.get(
                f"{self._base_url}/api/tags",
                timeout=self._config.timeout
            )
        except requests.exceptions.ConnectionError:
            raise LocalLLMConnectionError(
                f"Не удалось подключиться к Ollama на {self._config.host}:{self._config.port}"
            )
        except requests.exceptions.Timeout:
            raise LocalLLMConnectionError("Таймаут при получении списка моделей")

        if response.status_code != 200:
            raise LocalLLMError(
                f"Ошибка Ollama API: {response.status_code} - {response.text}"
            )

        models = self._decode_json(response).get("models", [])
        if not isinstance(models, list) or not all(isinstance(m, dict) for m in models):
            raise LocalLLMError("Ответ Ollama API содержит некорректный список 'models'")
        return [model.get("name", "") for model in models]

    def is_model_installed(self) -> bool:
        """Проверка, что сконфигурированная модель уже загружена."""
        name = self._config.model_name
        installed = self.list_models()
        # Ollama дописывает тег :latest к имени без тега
        return name in installed or f"{name}:latest" in installed

    def ensure_model(self) -> None:
        """
        Проверка наличия модели и загрузка при необходимости.

        Raises:
            ModelNotFoundError: Если модели нет, а автозагрузка отключена
            LocalLLMError: Если загрузка завершилась ошибкой
        """
        if self.is_model_installed():
            return

        name = self._config.model_name
        if not self._config.auto_pull:
            raise ModelNotFoundError(
                f"Модель {name} не найдена. Загрузите ее командой: ollama pull {name}"
            )

        print(f"[LLM] Загрузка модели {name}...")
        self._send_request(
            "/api/pull",
            {"model": name, "stream": False},
            timeout=self._config.pull_timeout
        )
        print("[LLM] Модель загружена!")

    def check_model_availability(self) -> bool:
        """
        Проверка доступности модели.

        Returns:
            True если сервер отвечает и модель загружена
        """
        try:
            return self.is_model_installed()
        except LLMError:
            return False

    def _build_options(self) -> Dict[str, Any]:
        """Параметры генерации в формате Ollama."""
        return {
            "num_predict": self._config.max_tokens,
            "temperature": self._config.temperature,
            "top_p": self._config.top_p,
            "repeat_penalty": self._config.repeat_penalty,
            "num_thread": self._config.num_threads or os.cpu_count() or 1
        }

    def _send_request(self, path: str, payload: Dict[str, Any],
                      timeout: Optional[int] = None) -> Dict[str, Any]:
        """
        Отправка запроса к API Ollama.

        Raises:
            LocalLLMConnectionError: При проблемах с подключением
            LocalLLMError: При ответе с кодом, отличным от 200, или не-JSON теле
        """
        try:
            response = requests.post(
                f"{self._base_url}{path}",
                json=payload,
                timeout=timeout or self._config.timeout
            )
        except requests.exceptions.ConnectionError:
            raise LocalLLMConnectionError(
                f"Не удалось подключиться к Ollama на {self._config.host}:{self._config.port}"
            )
        except requests.exceptions.Timeout:
            raise LocalLLMConnectionError("Таймаут при генерации ответа")

        if response.status_code != 200:
            raise LocalLLMError(
                f"Ошибка Ollama API: {response.status_code} - {response.text}"
            )

        return self._decode_json(response)

    @staticmethod
    def _decode_json(response) -> Dict[str, Any]:
        """Разбор JSON тела ответа; ожидается объект."""
        try:
            data = response.json()
        except ValueError as e:
            raise LocalLLMError(f"Ответ Ollama API не является JSON: {e}")
        if not isinstance(data, dict):
            raise LocalLLMError("Ответ Ollama API не является JSON объектом")
        return data

    def _parse_response(self, response_json: Dict[str, Any]) -> str:
        """
        Извлечение текста ответа из JSON Ollama.

        Raises:
            LocalLLMError: Если в ответе нет поля 'response'
        """
        if not isinstance(response_json, dict) or "response" not in response_json:
            raise LocalLLMError("Ответ Ollama API не содержит ключ 'response'")
        return str(response_json["response"]).strip()

    def _retry_with_backoff(self, func: callable, *args, **kwargs):
        """
        Выполнение функции с retry и экспоненциальным backoff.

        Повторяются только ошибки подключения.

        Raises:
            LocalLLMConnectionError: После исчерпания попыток
        """
        max_attempts = max(1, self._config.retry_attempts)
        for attempt in range(max_attempts):
            try:
                return func(*args, **kwargs)
            except LocalLLMConnectionError:
                if attempt == max_attempts - 1:
                    raise
                wait_time = 2 ** attempt  # 1, 2, 4 секунды
                print(f"[LLM] Попытка {attempt + 1} не удалась. Ожидание {wait_time}с...")
                time.sleep(wait_time)


class LLMError(Exception):
    """Базовый класс ошибок LLM клиента."""
    pass


class EmptyQueryError(LLMError):
    """Пустой вопрос."""
    pass


class LocalLLMError(LLMError):
    """Ошибка при работе с локальной LLM."""
    pass


class LocalLLMConnectionError(LocalLLMError):
    """Ошибка подключения к локальной LLM."""
    pass


class ModelNotFoundError(LocalLLMError):
    """Модель не загружена на сервер Ollama."""
    pass
