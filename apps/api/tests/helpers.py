"""Shared test doubles for outbound provider HTTP calls."""

import inspect
from typing import Any, Callable, Dict, List, Tuple, Union
from urllib.parse import parse_qs

import httpx


RouteResponse = Union[httpx.Response, Callable[[httpx.Request], Any]]


def _base_url(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


def form_body(request: httpx.Request) -> Dict[str, str]:
    parsed = parse_qs(request.content.decode("utf-8"))
    return {key: values[0] for key, values in parsed.items()}


class FakeProviderApi:
    """Routes outbound provider calls to canned responses and records them."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], RouteResponse] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, response: RouteResponse) -> None:
        self.routes[(method.upper(), url)] = response

    def calls_to(self, method: str, url: str) -> List[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method.upper() and _base_url(request) == url
        ]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, _base_url(request)))
        if route is None:
            return httpx.Response(404, json={"error": "not_found"})
        if isinstance(route, httpx.Response):
            # Fresh copy so a canned response can be served more than once
            return httpx.Response(route.status_code, headers=route.headers, content=route.content)
        result = route(request)
        if inspect.isawaitable(result):
            result = await result
        return result
