"""
Generation proxy: keeps the Gemini API key on the server side.

POST /api/generate with {"contents": ..., "config": ...} returns {"text": ...}.
"""
import logging
import os
from typing import Any, Callable, Optional

from aiohttp import web
from google import genai

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
GENERATE_ROUTE = "/api/generate"

API_KEY_MISSING_MESSAGE = "مفتاح API غير معرف على الخادم. الرجاء التأكد من إضافته في إعدادات الخادم."
MISSING_FIELDS_MESSAGE = 'الطلب يجب أن يحتوي على "contents" و "config".'
INTERNAL_ERROR_MESSAGE = "حدث خطأ داخلي أثناء الاتصال بخدمة Gemini."

ClientFactory = Callable[[str], Any]


def _default_client_factory(api_key: str):
    return genai.Client(api_key=api_key)


class GenerationProxy:
    """Forwards generation requests to Gemini."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None
    ):
        """
        Initialize the proxy.

        Args:
            model: Gemini model name
            api_key: API key, read from the API_KEY environment variable if omitted
            client_factory: Builds a genai client from an API key
        """
        self.model = model
        self._api_key = api_key
        self._client_factory = client_factory or _default_client_factory

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key or os.getenv("API_KEY")

    async def handle_generate(self, request: web.Request) -> web.Response:
        if request.method != "POST":
            return web.json_response({"error": "Method Not Allowed"}, status=405)

        api_key = self.api_key
        if not api_key:
            logger.error("Generation request rejected: API_KEY is not set")
            return web.json_response({"error": API_KEY_MISSING_MESSAGE}, status=500)

        try:
            body = await request.json()
        except ValueError:
            body = None

        contents = body.get("contents") if isinstance(body, dict) else None
        config = body.get("config") if isinstance(body, dict) else None
        if not contents or not config:
            return web.json_response({"error": MISSING_FIELDS_MESSAGE}, status=400)

        try:
            client = self._client_factory(api_key)
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini request failed: {e}", exc_info=True)
            return web.json_response({"error": str(e) or INTERNAL_ERROR_MESSAGE}, status=500)

        logger.info(f"Generated {len(response.text or '')} characters with {self.model}")
        return web.json_response({"text": response.text})


def create_app(proxy: Optional[GenerationProxy] = None) -> web.Application:
    """Build the aiohttp application serving the generate route."""
    proxy = proxy or GenerationProxy()
    app = web.Application()
    app["proxy"] = proxy
    app.router.add_route("*", GENERATE_ROUTE, proxy.handle_generate)
    return app


def run_proxy(config=None):
    """Run the proxy server until interrupted."""
    proxy_config = (config or {}).get("proxy", {})
    host = proxy_config.get("host", "0.0.0.0")
    port = int(proxy_config.get("port", 8080))
    model = proxy_config.get("model", DEFAULT_MODEL)

    if not os.getenv("API_KEY"):
        logger.warning("API_KEY is not set; generation requests will fail with HTTP 500")

    logger.info(f"Starting generation proxy on {host}:{port} (model: {model})")
    web.run_app(create_app(GenerationProxy(model=model)), host=host, port=port, print=None)
