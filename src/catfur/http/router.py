"""
=============================================================================
ROUTE TABLE AND MATCHER
=============================================================================

Routes are stored per method, in registration order:

    ┌─────────┬──────────────────────────────────────────────────────────┐
    │ GET     │ /                  → index                               │
    │         │ /users/{id}        → get_user                            │
    │         │ /users/static      → never reached for GET /users/static │
    ├─────────┼──────────────────────────────────────────────────────────┤
    │ POST    │ /users             → create_user                         │
    └─────────┴──────────────────────────────────────────────────────────┘

=============================================================================
PATTERNS
=============================================================================

A pattern is split into segments after stripping leading and trailing "/":

    "/users/{id}/posts"  →  [STATIC users] [PARAM id] [STATIC posts]
    "/"                  →  []  (zero segments)

A request path is split the same way. A route matches when:

    1. the segment counts are equal, and
    2. every STATIC segment equals the request segment at that position.

PARAM segments always match and bind the request segment to their name.
There is no wildcard, and no ranking by specificity: the first route that
matches wins, so register the narrower pattern first when two overlap.

    GET /users/42/posts      →  get_user_posts   {"id": "42"}
    GET /users/42            →  no match (2 segments vs 3)

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union
import logging

from .request import HTTPRequest, Method
from .response import HTTPResponse, not_found


logger = logging.getLogger(__name__)

# A handler takes a request and returns a response. Any callable works,
# including an object with __call__.
Handler = Callable[[HTTPRequest], HTTPResponse]


class RouterFrozenError(RuntimeError):
    """A route was registered after the server started serving."""


class RouteType(Enum):
    STATIC = "static"   # literal text, compared by equality
    PARAM = "param"     # {name}, binds one path segment


@dataclass(frozen=True)
class Segment:
    kind: RouteType
    value: str          # literal text, or parameter name

    def __str__(self) -> str:
        return f"{{{self.value}}}" if self.kind is RouteType.PARAM else self.value


def split_path(path: str) -> List[str]:
    """
    Split a path into segments.

        >>> split_path("/users/42/")
        ['users', '42']
        >>> split_path("/")
        []
    """
    stripped = path.strip("/")
    return stripped.split("/") if stripped else []


def parse_pattern(pattern: str) -> Tuple[Segment, ...]:
    """
    Decompose a route pattern into segments.

    Raises:
        ValueError: a parameter name is not an identifier, or appears twice.
    """
    segments = []
    seen = set()
    for part in split_path(pattern):
        if part.startswith("{") and part.endswith("}"):
            name = part[1:-1]
            if not name.isidentifier():
                raise ValueError(
                    f"Invalid parameter name {name!r} in pattern {pattern!r}"
                )
            if name in seen:
                raise ValueError(
                    f"Duplicate parameter {name!r} in pattern {pattern!r}"
                )
            seen.add(name)
            segments.append(Segment(RouteType.PARAM, name))
        else:
            segments.append(Segment(RouteType.STATIC, part))
    return tuple(segments)


@dataclass
class Route:
    """A pattern bound to one method and one handler."""

    method: Method
    pattern: str
    segments: Tuple[Segment, ...]
    handler: Handler

    @property
    def param_names(self) -> List[str]:
        return [s.value for s in self.segments if s.kind is RouteType.PARAM]

    def match(self, parts: List[str]) -> Optional[Dict[str, str]]:
        """Bound parameters if ``parts`` matches this route, else None."""
        if len(parts) != len(self.segments):
            return None
        params: Dict[str, str] = {}
        for segment, part in zip(self.segments, parts):
            if segment.kind is RouteType.STATIC:
                if segment.value != part:
                    return None
            else:
                params[segment.value] = part
        return params


@dataclass
class RouteMatch:
    """
    Outcome of resolving a request.

    ``route`` is None for the synthesized not-found resolution, whose
    handler answers 404.
    """

    handler: Handler
    params: Dict[str, str] = field(default_factory=dict)
    route: Optional[Route] = None

    @property
    def found(self) -> bool:
        return self.route is not None


def not_found_handler(request: HTTPRequest) -> HTTPResponse:
    return not_found(f"No route for {request.method} {request.path}")


class Router:
    """
    Ordered route table with ``{name}`` path parameters.

        router = Router()

        @router.get("/users/{id}")
        def get_user(request):
            return HTTPResponse.json({"id": request.param("id")})

        router.add_route("POST", "/users", create_user)

    After freeze() the table is read-only, which lets worker threads match
    without locking.
    """

    def __init__(self):
        self._routes: Dict[Method, List[Route]] = {}
        self._frozen = False

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(
        self,
        method: Union[Method, str],
        pattern: str,
        handler: Handler,
    ) -> Route:
        """
        Register ``handler`` for ``method`` and ``pattern``.

        Raises:
            RouterFrozenError: the server is already serving.
            ValueError: malformed pattern.
            ProtocolError: unknown method.
        """
        if self._frozen:
            raise RouterFrozenError(
                f"Cannot register {method} {pattern}: routes are frozen"
            )
        if not callable(handler):
            raise TypeError(f"Handler for {method} {pattern} is not callable")

        if not isinstance(method, Method):
            method = Method.parse(str(method).upper())

        route = Route(
            method=method,
            pattern=pattern,
            segments=parse_pattern(pattern),
            handler=handler,
        )
        self._routes.setdefault(method, []).append(route)
        logger.debug(f"Registered route {method} {pattern}")
        return route

    def route(
        self,
        method: Union[Method, str],
        pattern: str,
    ) -> Callable[[Handler], Handler]:
        """
        Decorator form of add_route(). The handler is returned unchanged, so
        one function can be stacked under several routes.
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(method, pattern, handler)
            return handler
        return decorator

    def get(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(Method.GET, pattern)

    def post(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(Method.POST, pattern)

    def put(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(Method.PUT, pattern)

    def patch(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(Method.PATCH, pattern)

    def delete(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(Method.DELETE, pattern)

    def head(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(Method.HEAD, pattern)

    def options(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(Method.OPTIONS, pattern)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # =========================================================================
    # MATCHING
    # =========================================================================

    def match(self, method: Union[Method, str], path: str) -> Optional[RouteMatch]:
        """
        First route under ``method`` whose segments match ``path``.

        Returns None when nothing matches, including for a method with no
        routes at all.
        """
        if not isinstance(method, Method):
            try:
                method = Method(method)
            except ValueError:
                return None

        parts = split_path(path)
        for route in self._routes.get(method, ()):
            params = route.match(parts)
            if params is not None:
                return RouteMatch(handler=route.handler, params=params, route=route)
        return None

    def resolve(self, method: Union[Method, str], path: str) -> RouteMatch:
        """Like match(), but falls back to a 404 resolution with no params."""
        found = self.match(method, path)
        if found is None:
            return RouteMatch(handler=not_found_handler)
        return found

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def routes(self) -> List[Route]:
        """All routes, grouped by method in the order methods first appeared."""
        return [route for routes in self._routes.values() for route in routes]

    def __len__(self) -> int:
        return sum(len(routes) for routes in self._routes.values())

    def print_routes(self) -> None:
        """
        Print the table, as shown in the startup banner:

            Registered Routes:
            ------------------------------------------------------------
              GET      /
              GET      /hello/{name}
              POST     /echo
            ------------------------------------------------------------
        """
        print("\nRegistered Routes:")
        print("-" * 60)
        for route in self.routes():
            print(f"  {route.method.value:8} {route.pattern}")
        print("-" * 60)
