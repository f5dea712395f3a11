"""
Request admission: API key check, then per-identity rate limiting.

The gates run in the exact order of the tuple given to
``AdmissionMiddleware``. The first gate that returns a ``GateRejection``
answers the request and nothing further down the chain (later gates, routes,
services) runs.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from fastapi import status
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.core.rate_limit import BucketRegistry
from app.schemas.common import ErrorResponse

MISSING_API_KEY_MESSAGE = 'API key is missing. Please provide X-API-Key header.'
INVALID_API_KEY_MESSAGE = 'Invalid API key'
RATE_LIMIT_MESSAGE = 'Rate limit exceeded. Please try again later.'


@dataclass(frozen=True)
class GateRejection:
    status_code: int
    message: str

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=ErrorResponse(message=self.message).model_dump(),
        )


class Gate(Protocol):
    name: str

    def check(self, request: Request) -> Optional[GateRejection]:
        ...


def _mask(identity: str) -> str:
    if len(identity) <= 4:
        return '***'
    return identity[:4] + '***'


def client_identity(request: Request, header_name: str) -> str:
    api_key = request.headers.get(header_name)
    if api_key:
        return api_key
    if request.client and request.client.host:
        return request.client.host
    return 'unknown'


class ApiKeyGate:
    name = 'api_key'

    def __init__(self, valid_key: str, *, header_name: str, exempt_paths: Sequence[str]) -> None:
        if not valid_key:
            raise ValueError('API key must be configured')
        self._valid_key = valid_key
        self.header_name = header_name
        self.exempt_paths = tuple(exempt_paths)

    def is_exempt(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.exempt_paths)

    def check(self, request: Request) -> Optional[GateRejection]:
        path = request.url.path
        if self.is_exempt(path):
            return None
        api_key = request.headers.get(self.header_name)
        if not api_key:
            logger.warning('Missing API key for request to: {}', path)
            return GateRejection(status.HTTP_401_UNAUTHORIZED, MISSING_API_KEY_MESSAGE)
        if not secrets.compare_digest(api_key.encode('utf-8'), self._valid_key.encode('utf-8')):
            logger.warning('Invalid API key attempt for request to: {}', path)
            return GateRejection(status.HTTP_401_UNAUTHORIZED, INVALID_API_KEY_MESSAGE)
        logger.debug('API key validated for request to: {}', path)
        return None


class RateLimitGate:
    name = 'rate_limit'

    def __init__(self, registry: BucketRegistry, *, header_name: str) -> None:
        self.registry = registry
        self.header_name = header_name

    def check(self, request: Request) -> Optional[GateRejection]:
        identity = client_identity(request, self.header_name)
        if self.registry.try_consume(identity):
            logger.debug('Request allowed for key: {}', _mask(identity))
            return None
        logger.warning('Rate limit exceeded for key: {}', _mask(identity))
        return GateRejection(status.HTTP_429_TOO_MANY_REQUESTS, RATE_LIMIT_MESSAGE)


class AdmissionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, gates: Sequence[Gate]) -> None:
        super().__init__(app)
        self.gates = tuple(gates)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        for gate in self.gates:
            rejection = gate.check(request)
            if rejection is not None:
                return rejection.to_response()
        return await call_next(request)


def build_gates(config, registry: BucketRegistry) -> tuple[Gate, ...]:
    return (
        ApiKeyGate(
            config.API_KEY,
            header_name=config.API_KEY_HEADER,
            exempt_paths=config.AUTH_EXEMPT_PATHS,
        ),
        RateLimitGate(registry, header_name=config.API_KEY_HEADER),
    )
