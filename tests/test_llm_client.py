"""
Тесты для клиента локальной LLM.
"""

import unittest
from unittest.mock import patch, Mock
import sys
import os

import requests

# Добавляем путь к src для импорта
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from llm_client import (
    LLMConfig,
    LocalLLMClient,
    BaseLLMClient,
    LLMError,
    EmptyQueryError,
    LocalLLMError,
    LocalLLMConnectionError,
    ModelNotFoundError,
)


def _response(status_code=200, json_data=None, text=""):
    """Создает мок ответа requests."""
    response = Mock()
    response.status_code = status_code
    response.json.return_value = json_data if json_data is not None else {}
    response.text = text
    return response


class TestLLMConfig(unittest.TestCase):
    """Тесты для LLMConfig."""

    def test_defaults(self):
        """Значения по умолчанию."""
        config = LLMConfig()

        self.assertEqual(config.model_name, "mistral:7b-instruct")
        self.assertEqual(config.max_tokens, 1000)
        self.assertEqual(config.temperature, 0.7)
        self.assertEqual(config.top_p, 0.9)
        self.assertEqual(config.repeat_penalty, 1.1)
        self.assertIsNone(config.num_threads)
        self.assertTrue(config.auto_pull)


class TestConstructPrompt(unittest.TestCase):
    """Тесты сборки промпта клиентом."""

    def test_construct_prompt_without_context(self):
        client = LocalLLMClient()

        self.assertEqual(
            client.construct_prompt("Hi?", []),
            "<s>[INST] Question: Hi? [/INST]"
        )

    def test_client_is_base_client(self):
        self.assertIsInstance(LocalLLMClient(), BaseLLMClient)


class TestGenerateResponse(unittest.TestCase):
    """Тесты генерации ответа."""

    def setUp(self):
        self.config = LLMConfig(num_threads=4, retry_attempts=3)
        self.client = LocalLLMClient(self.config)

    def test_empty_query_raises(self):
        """Пустой вопрос отклоняется до сетевого запроса."""
        with patch('llm_client.requests.post') as mock_post:
            with self.assertRaises(EmptyQueryError):
                self.client.generate_response("   ", ["context"])

            mock_post.assert_not_called()

    @patch('llm_client.requests.post')
    def test_generate_success(self, mock_post):
        """Успешная генерация: payload и разбор ответа."""
        mock_post.return_value = _response(json_data={"response": "  RAG is retrieval.\n"})

        answer = self.client.generate_response("What is RAG?", ["RAG = retrieval + LLM."])

        self.assertEqual(answer, "RAG is retrieval.")
        mock_post.assert_called_once_with(
            "http://localhost:11434/api/generate",
            json={
                "model": "mistral:7b-instruct",
                "prompt": (
                    "<s>[INST] Using the following context to answer the question:\n\n"
                    "RAG = retrieval + LLM.\n\nQuestion: What is RAG? [/INST]"
                ),
                "raw": True,
                "stream": False,
                "options": {
                    "num_predict": 1000,
                    "temperature": 0.7,
                    "top_p": 0.9,
                    "repeat_penalty": 1.1,
                    "num_thread": 4
                }
            },
            timeout=120
        )

    @patch('llm_client.os.cpu_count', return_value=8)
    def test_num_thread_defaults_to_cpu_count(self, _mock_cpu):
        """Без num_threads используются все ядра."""
        client = LocalLLMClient(LLMConfig())

        self.assertEqual(client._build_options()["num_thread"], 8)

    @patch('llm_client.requests.post')
    def test_api_error(self, mock_post):
        """Код ответа, отличный от 200."""
        mock_post.return_value = _response(status_code=500, text="model crashed")

        with self.assertRaises(LocalLLMError) as context:
            self.client.generate_response("question", [])

        self.assertIn("500", str(context.exception))
        self.assertIn("model crashed", str(context.exception))
        self.assertEqual(mock_post.call_count, 1)

    @patch('llm_client.requests.post')
    def test_missing_response_field(self, mock_post):
        mock_post.return_value = _response(json_data={"done": True})

        with self.assertRaises(LocalLLMError) as context:
            self.client.generate_response("question", [])

        self.assertIn("response", str(context.exception))

    @patch('llm_client.time.sleep')
    @patch('llm_client.requests.post')
    def test_retry_then_success(self, mock_post, mock_sleep):
        """Ошибка подключения повторяется с backoff."""
        mock_post.side_effect = [
            requests.exceptions.ConnectionError(),
            _response(json_data={"response": "ok"}),
        ]

        self.assertEqual(self.client.generate_response("question", []), "ok")
        mock_sleep.assert_called_once_with(1)

    @patch('llm_client.time.sleep')
    @patch('llm_client.requests.post')
    def test_retry_exhausted(self, mock_post, mock_sleep):
        """После всех попыток - LocalLLMConnectionError."""
        mock_post.side_effect = requests.exceptions.Timeout()

        with self.assertRaises(LocalLLMConnectionError) as context:
            self.client.generate_response("question", [])

        self.assertIn("Таймаут", str(context.exception))
        self.assertEqual(mock_post.call_count, 3)
        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [1, 2])


class TestModelManagement(unittest.TestCase):
    """Тесты проверки и загрузки модели."""

    def setUp(self):
        self.client = LocalLLMClient(LLMConfig(model_name="mistral"))

    @patch('llm_client.requests.get')
    def test_list_models(self, mock_get):
        mock_get.return_value = _response(json_data={
            "models": [{"name": "mistral:latest"}, {"name": "llama3:8b"}]
        })

        self.assertEqual(self.client.list_models(), ["mistral:latest", "llama3:8b"])
        mock_get.assert_called_once_with("http://localhost:11434/api/tags", timeout=120)

    @patch('llm_client.requests.get')
    def test_is_model_installed_with_latest_tag(self, mock_get):
        """Имя без тега совпадает с :latest."""
        mock_get.return_value = _response(json_data={"models": [{"name": "mistral:latest"}]})

        self.assertTrue(self.client.is_model_installed())

    @patch('llm_client.requests.post')
    @patch('llm_client.requests.get')
    def test_ensure_model_installed_no_pull(self, mock_get, mock_post):
        """Установленная модель не загружается повторно."""
        mock_get.return_value = _response(json_data={"models": [{"name": "mistral:latest"}]})

        self.client.ensure_model()

        mock_post.assert_not_called()

    @patch('llm_client.requests.post')
    @patch('llm_client.requests.get')
    def test_ensure_model_pulls_missing(self, mock_get, mock_post):
        """Отсутствующая модель загружается через /api/pull."""
        mock_get.return_value = _response(json_data={"models": []})
        mock_post.return_value = _response(json_data={"status": "success"})

        self.client.ensure_model()

        mock_post.assert_called_once_with(
            "http://localhost:11434/api/pull",
            json={"model": "mistral", "stream": False},
            timeout=3600
        )

    @patch('llm_client.requests.get')
    def test_ensure_model_without_auto_pull(self, mock_get):
        """Без автозагрузки - ModelNotFoundError."""
        mock_get.return_value = _response(json_data={"models": []})
        client = LocalLLMClient(LLMConfig(model_name="mistral", auto_pull=False))

        with self.assertRaises(ModelNotFoundError) as context:
            client.ensure_model()

        self.assertIn("ollama pull mistral", str(context.exception))

    @patch('llm_client.requests.get')
    def test_check_model_availability_connection_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError()

        self.assertFalse(self.client.check_model_availability())

    @patch('llm_client.requests.get')
    def test_check_model_availability_not_json(self, mock_get):
        """Ответ 200 без JSON - модель недоступна, без исключения."""
        response = _response()
        response.json.side_effect = ValueError("no json")
        mock_get.return_value = response

        self.assertFalse(self.client.check_model_availability())

    @patch('llm_client.requests.get')
    def test_list_models_not_json(self, mock_get):
        response = _response()
        response.json.side_effect = ValueError("no json")
        mock_get.return_value = response

        with self.assertRaises(LocalLLMError):
            self.client.list_models()

    @patch('llm_client.requests.get')
    def test_list_models_unexpected_shape(self, mock_get):
        """JSON список вместо объекта и models не списком."""
        mock_get.return_value = _response(json_data=[{"name": "mistral"}])
        with self.assertRaises(LocalLLMError):
            self.client.list_models()

        mock_get.return_value = _response(json_data={"models": "mistral"})
        with self.assertRaises(LocalLLMError):
            self.client.list_models()

    @patch('llm_client.requests.post')
    def test_generate_not_json(self, mock_post):
        """Не-JSON ответ генерации - LocalLLMError без повторов."""
        response = _response()
        response.json.side_effect = ValueError("no json")
        mock_post.return_value = response

        with self.assertRaises(LocalLLMError) as context:
            self.client.generate_response("question", [])

        self.assertNotIsInstance(context.exception, LocalLLMConnectionError)
        self.assertEqual(mock_post.call_count, 1)

    @patch('llm_client.requests.get')
    def test_check_model_availability_true(self, mock_get):
        mock_get.return_value = _response(json_data={"models": [{"name": "mistral"}]})

        self.assertTrue(self.client.check_model_availability())


class TestErrorHierarchy(unittest.TestCase):
    """Тесты иерархии ошибок."""

    def test_hierarchy(self):
        self.assertTrue(issubclass(EmptyQueryError, LLMError))
        self.assertTrue(issubclass(LocalLLMError, LLMError))
        self.assertTrue(issubclass(LocalLLMConnectionError, LocalLLMError))
        self.assertTrue(issubclass(ModelNotFoundError, LocalLLMError))


if __name__ == '__main__':
    unittest.main()
