"""
=============================================================================
MIDDLEWARE PIPELINE
=============================================================================

A middleware is a transform from one handler to another. Given the next
handler it returns a new handler that can act before and after it, or not
call it at all:

    def timing(next_handler):
        def handler(request):
            started = time.time()
            response = next_handler(request)
            return response.set_header("X-Elapsed", f"{time.time() - started:.3f}")
        return handler

Two other shapes are accepted and adapted to that form:

    class Auth(Middleware):                    @function_middleware
        def __call__(self, request, next):     def auth(request, next):
            ...                                    ...

=============================================================================
ORDER
=============================================================================

Registration order is nesting order. With [A, B] around handler H:

    A(B(H))

    request  ──► A before ──► B before ──► H
    response ◄── A after  ◄── B after  ◄──┘

A short-circuiting middleware returns its own response and nothing inside
it runs. Middleware that need to hand data inward or outward use
request.context, which lives exactly as long as the request.

The list is frozen when the server starts. wrap() composes the chain around
each request's resolved handler; that costs one closure per middleware and
does no I/O.
=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Union
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)

NextHandler = Callable[[HTTPRequest], HTTPResponse]
Transform = Callable[[NextHandler], NextHandler]


class Middleware(ABC):
    """
    Class-based middleware. Subclasses implement __call__(request, next).

        class ServedBy(Middleware):
            def __call__(self, request, next):
                return next(request).set_header("X-Served-By", "catfur")
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...

    @property
    def name(self) -> str:
        return type(self).__name__

    def wrap(self, handler: NextHandler) -> NextHandler:
        """This middleware as a transform, applied to ``handler``."""
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return self(request, handler)
        return wrapped


MiddlewareLike = Union[Middleware, Transform]


def as_transform(middleware: MiddlewareLike) -> Transform:
    if isinstance(middleware, Middleware):
        return middleware.wrap
    if callable(middleware):
        return middleware
    raise TypeError(f"Not a middleware: {middleware!r}")


def _describe(middleware: MiddlewareLike) -> str:
    if isinstance(middleware, Middleware):
        return middleware.name
    return getattr(middleware, "__name__", type(middleware).__name__)


class MiddlewarePipeline:
    """
    Ordered middleware list; the first one added is the outermost.

        pipeline = MiddlewarePipeline()
        pipeline.use(LoggingMiddleware(), CORSMiddleware())
        handler = pipeline.wrap(resolution.handler)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[MiddlewareLike] = []
        self._transforms: List[Transform] = []
        self._frozen = False

    def add(self, middleware: MiddlewareLike) -> "MiddlewarePipeline":
        """
        Append ``middleware`` (innermost so far).

        Raises:
            RuntimeError: the pipeline is frozen.
            TypeError: ``middleware`` is not callable.
        """
        if self._frozen:
            raise RuntimeError(
                f"Cannot add middleware {_describe(middleware)}: pipeline is frozen"
            )
        self._transforms.append(as_transform(middleware))
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {_describe(middleware)}")
        return self

    def use(self, *middleware: MiddlewareLike) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Compose M1(M2(...Mn(handler))).

        Applied innermost first, so the first-added middleware ends up
        outermost.
        """
        current = handler
        for transform in reversed(self._transforms):
            current = transform(current)
        return current

    def names(self) -> List[str]:
        return [_describe(mw) for mw in self._middleware]

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


class FunctionMiddleware(Middleware):
    """Adapts a ``(request, next) -> response`` function."""

    def __init__(
        self,
        func: Callable[[HTTPRequest, NextHandler], HTTPResponse],
        name: Optional[str] = None,
    ):
        self._func = func
        self._name = name or getattr(func, "__name__", "function_middleware")

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[HTTPRequest, NextHandler], HTTPResponse]
) -> FunctionMiddleware:
    """
    Decorator form of FunctionMiddleware:

        @function_middleware
        def no_cache(request, next):
            return next(request).set_header("Cache-Control", "no-store")

        server.use(no_cache)
    """
    return FunctionMiddleware(func)
