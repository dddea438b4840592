"""
Unit tests for the generation proxy and the command-line entry point.
"""
import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

from aiohttp.test_utils import TestClient, TestServer

import main
from quiz_journey.proxy import (
    API_KEY_MISSING_MESSAGE,
    GENERATE_ROUTE,
    MISSING_FIELDS_MESSAGE,
    GenerationProxy,
    create_app,
)
from tests.test_fixtures import async_test


def fake_client_factory(text="[]", error=None):
    """Build a client factory whose generate_content returns text or raises error."""
    client = Mock()
    client.aio.models.generate_content = AsyncMock(
        return_value=SimpleNamespace(text=text), side_effect=error
    )
    factory = Mock(return_value=client)
    return factory, client


def mock_request(method="POST", body=None, json_error=None):
    request = Mock()
    request.method = method
    request.json = AsyncMock(return_value=body, side_effect=json_error)
    return request


def response_body(response):
    return json.loads(response.text)


class TestGenerationProxy(unittest.TestCase):
    """Test cases for the /api/generate handler."""

    def setUp(self):
        self.payload = {"contents": "اكتب 5 أسئلة", "config": {"responseMimeType": "application/json"}}

    @async_test
    async def test_rejects_non_post(self):
        factory, _ = fake_client_factory()
        proxy = GenerationProxy(api_key="key", client_factory=factory)

        response = await proxy.handle_generate(mock_request("GET"))

        self.assertEqual(response.status, 405)
        self.assertEqual(response_body(response), {"error": "Method Not Allowed"})
        factory.assert_not_called()

    @async_test
    async def test_missing_api_key(self):
        factory, _ = fake_client_factory()
        proxy = GenerationProxy(client_factory=factory)

        with patch.dict(os.environ, {}, clear=True):
            response = await proxy.handle_generate(mock_request(body=self.payload))

        self.assertEqual(response.status, 500)
        self.assertEqual(response_body(response)["error"], API_KEY_MISSING_MESSAGE)

    @async_test
    async def test_api_key_from_environment(self):
        factory, _ = fake_client_factory('[{"question": "?"}]')
        proxy = GenerationProxy(client_factory=factory)

        with patch.dict(os.environ, {"API_KEY": "env-key"}):
            response = await proxy.handle_generate(mock_request(body=self.payload))

        self.assertEqual(response.status, 200)
        factory.assert_called_once_with("env-key")

    @async_test
    async def test_missing_fields(self):
        factory, _ = fake_client_factory()
        proxy = GenerationProxy(api_key="key", client_factory=factory)

        for body in ({"contents": "x"}, {"config": {}}, ["contents", "config"], None):
            response = await proxy.handle_generate(mock_request(body=body))
            self.assertEqual(response.status, 400)
            self.assertEqual(response_body(response)["error"], MISSING_FIELDS_MESSAGE)

        response = await proxy.handle_generate(mock_request(json_error=ValueError("not json")))
        self.assertEqual(response.status, 400)

    @async_test
    async def test_forwards_to_gemini(self):
        factory, client = fake_client_factory('[{"question": "ما هي الصلاة؟"}]')
        proxy = GenerationProxy(model="gemini-test", api_key="key", client_factory=factory)

        response = await proxy.handle_generate(mock_request(body=self.payload))

        self.assertEqual(response.status, 200)
        self.assertEqual(response_body(response), {"text": '[{"question": "ما هي الصلاة؟"}]'})
        client.aio.models.generate_content.assert_awaited_once_with(
            model="gemini-test",
            contents=self.payload["contents"],
            config=self.payload["config"],
        )

    @async_test
    async def test_gemini_failure(self):
        factory, _ = fake_client_factory(error=RuntimeError("quota exceeded"))
        proxy = GenerationProxy(api_key="key", client_factory=factory)

        with self.assertLogs("quiz_journey.proxy", level="ERROR"):
            response = await proxy.handle_generate(mock_request(body=self.payload))

        self.assertEqual(response.status, 500)
        self.assertEqual(response_body(response), {"error": "quota exceeded"})

    @async_test
    async def test_route_through_application(self):
        factory, _ = fake_client_factory('[]')
        app = create_app(GenerationProxy(api_key="key", client_factory=factory))

        async with TestClient(TestServer(app)) as client:
            response = await client.get(GENERATE_ROUTE)
            self.assertEqual(response.status, 405)

            response = await client.post(GENERATE_ROUTE, json=self.payload)
            self.assertEqual(response.status, 200)
            self.assertEqual(await response.json(), {"text": "[]"})


class TestEntryPoint(unittest.TestCase):
    """Test cases for main.py helpers."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_parse_args(self):
        args = main.parse_args([])
        self.assertEqual(args.command, "bot")
        self.assertEqual(args.config, "config.json")

        args = main.parse_args(["proxy", "--config", "other.json"])
        self.assertEqual(args.command, "proxy")
        self.assertEqual(args.config, "other.json")

    def test_load_config(self):
        path = Path(self.temp_dir) / "config.json"
        path.write_text(json.dumps({"bot": {"token": "abc"}}), encoding='utf-8')
        self.assertEqual(main.load_config(str(path)), {"bot": {"token": "abc"}})

    def test_load_config_failures_exit(self):
        with patch('builtins.print'):
            with self.assertRaises(SystemExit):
                main.load_config(str(Path(self.temp_dir) / "missing.json"))

            broken = Path(self.temp_dir) / "broken.json"
            broken.write_text("{", encoding='utf-8')
            with self.assertRaises(SystemExit):
                main.load_config(str(broken))

    def test_bot_token_resolution(self):
        with patch.dict(os.environ, {"DISCORD_BOT_TOKEN": "from-env"}):
            self.assertEqual(main.get_bot_token({"bot": {"token": "from-config"}}), "from-env")

        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(main.get_bot_token({"bot": {"token": "from-config"}}), "from-config")
            with patch('builtins.print'):
                with self.assertRaises(SystemExit):
                    main.get_bot_token({"bot": {"token": "YOUR_DISCORD_BOT_TOKEN_HERE"}})


if __name__ == '__main__':
    unittest.main()
