"""HTTP doubles and constants shared by the test modules."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Union

import httpx

TEST_MACHINE = "test-host-linux-x86_64"
GROQ_KEY = "gsk_" + "a" * 52
OPENROUTER_KEY = "sk-or-v1-" + "b" * 32

RouteResult = Union[httpx.Response, Exception, Callable[[httpx.Request], Any]]


class Router:
    """Maps (method, path suffix) to canned responses and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], RouteResult] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, result: RouteResult) -> None:
        self.routes[(method.upper(), path)] = result

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(path)]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for (method, path), result in self.routes.items():
            if request.method == method and request.url.path.endswith(path):
                if isinstance(result, Exception):
                    raise result
                if isinstance(result, httpx.Response):
                    # fresh copy, a Response is bound to the request that read it
                    return httpx.Response(
                        result.status_code, headers=result.headers, content=result.content
                    )
                outcome = result(request)
                if hasattr(outcome, "__await__"):
                    outcome = await outcome
                return outcome
        return httpx.Response(404, json={"error": "no route"})


def ollama_tags(*names: str) -> httpx.Response:
    return httpx.Response(200, json={"models": [{"name": n} for n in names]})


def ollama_generate(text: str | None) -> httpx.Response:
    body: dict[str, Any] = {"done": True}
    if text is not None:
        body["response"] = text
    return httpx.Response(200, json=body)


def chat_response(content: str | None) -> httpx.Response:
    message: dict[str, Any] = {"role": "assistant"}
    if content is not None:
        message["content"] = content
    return httpx.Response(200, json={"choices": [{"message": message}]})


def model_catalog(*ids: str) -> httpx.Response:
    return httpx.Response(200, json={"data": [{"id": i} for i in ids]})
