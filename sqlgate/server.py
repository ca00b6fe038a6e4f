import os, sys, json, time, uuid, decimal, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

LOG = os.getenv("LOG_LEVEL", "INFO").upper()

# lib/pq error-source marker. asyncpg messages carry no source marker, so the
# strip only fires for pq-formatted messages (kept for compatibility)
ERROR_SOURCE_PREFIX = "pq: "


# ---- Logging ----
def _log(level: str, msg: str, **kw):
    if level == "DEBUG" and LOG not in ("DEBUG",): return
    entry = {"ts": time.time(), "level": level, "msg": msg, **kw}
    print(json.dumps({"log": entry}, default=str), flush=True, file=sys.stderr)


# ---- Fehlerarten ----
class DispatchError(Exception):
    status_code = 400
    default_message = "Bad request"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class NotFound(DispatchError):
    status_code = 404
    default_message = "Requested URL not found"


class NotImplementedVerb(DispatchError):
    status_code = 501
    default_message = "Method not implemented"


class NoArguments(DispatchError):
    status_code = 400
    default_message = "Not all needed arguments passed"


class QueryExecutionError(DispatchError):
    status_code = 400
    default_message = "Query execution failed"


class ConfigError(Exception):
    pass


# ---- Modelle ----
class Verb(str, Enum):
    GET = "GET"
    DELETE = "DELETE"
    POST = "POST"
    PUT = "PUT"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["Verb"]:
        try:
            return cls((raw or "").strip().upper())
        except ValueError:
            return None

    @property
    def uses_body(self) -> bool:
        return self is not Verb.GET


class Endpoint(BaseModel):
    """One row of the endpoint table.

    ``params`` order is the positional binding order into ``query``
    ($1 is params[0], $2 is params[1], ...). The declared verb is kept as
    written; an unknown verb makes the endpoint answer 501.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    entity: str
    entity_method: str
    request_method: str
    params: Tuple[str, ...] = Field(default_factory=tuple)
    query: str

    @property
    def verb(self) -> Optional[Verb]:
        return Verb.parse(self.request_method)

    def matches(self, entity: str, entity_method: str) -> bool:
        return self.entity == entity and self.entity_method == entity_method


class Reply(BaseModel):
    body: str
    status_code: int = 200
    is_error: bool = False


class RowHandle(Protocol):
    """Anything with asyncpg's ``fetchrow`` signature (Pool, Connection, fakes)."""

    async def fetchrow(self, query: str, *args: Any) -> Optional[Sequence[Any]]: ...


_endpoint_list = TypeAdapter(List[Endpoint])
_body_object = TypeAdapter(Dict[str, Any])


def load_endpoints(path: str) -> Tuple[Endpoint, ...]:
    if not os.path.isfile(path):
        raise ConfigError(f"Cannot find endpoints file: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError(f"Cannot read endpoints file: {e}") from e
    try:
        return tuple(_endpoint_list.validate_json(raw))
    except ValidationError as e:
        raise ConfigError(f"Invalid endpoints file {path}: {e}") from e


# ---- Parameter ----
def values_from_query(values: Mapping[str, Sequence[str]], params: Sequence[str]) -> List[str]:
    args: List[str] = []
    for name in params:
        found = values.get(name) or []
        if not found or not found[0]:
            raise NoArguments()
        args.append(found[0])
    return args


def decode_body(body: bytes) -> Dict[str, str]:
    """Decode a JSON object into its string-valued entries.

    Invalid JSON or a non-object body is logged and yields {}. Extra keys are
    kept; entries whose value is not a string are dropped and logged, the rest
    of the object still counts.
    """
    try:
        raw = _body_object.validate_json(body or b"")
    except ValidationError as e:
        _log("WARN", "body_decode_failed", error=str(e).splitlines()[0])
        return {}
    values = {k: v for k, v in raw.items() if isinstance(v, str)}
    skipped = sorted(set(raw) - set(values))
    if skipped:
        _log("WARN", "body_decode_failed", error="non-string values", fields=skipped)
    return values


def values_from_body(body: bytes, params: Sequence[str]) -> List[str]:
    values = decode_body(body)
    args: List[str] = []
    for name in params:
        if not values.get(name):
            raise NoArguments()
        args.append(values[name])
    return args


# ---- Ausführung ----
def _scan_text(v: Any) -> str:
    if v is None: raise QueryExecutionError("sql: converting NULL to string is unsupported")
    if isinstance(v, str): return v
    if isinstance(v, (bytes, bytearray, memoryview)): return bytes(v).decode("utf-8", errors="replace")
    if isinstance(v, bool): return "true" if v else "false"
    if isinstance(v, (datetime.datetime, datetime.date, datetime.time)): return v.isoformat()
    if isinstance(v, (decimal.Decimal, uuid.UUID)): return str(v)
    if isinstance(v, (dict, list)): return json.dumps(v)
    return str(v)


def scan_scalar(row: Optional[Sequence[Any]]) -> str:
    if row is None:
        raise QueryExecutionError("sql: no rows in result set")
    if len(row) != 1:
        raise QueryExecutionError(f"sql: expected {len(row)} destination arguments in Scan, not 1")
    return _scan_text(row[0])


async def execute(handle: RowHandle, query: str, args: Sequence[str]) -> str:
    try:
        row = await handle.fetchrow(query, *args)
    except Exception as e:
        raise QueryExecutionError(str(e) or type(e).__name__) from e
    return scan_scalar(row)


# ---- Antwort ----
def strip_error_source(message: str) -> str:
    if message.startswith(ERROR_SOURCE_PREFIX) and len(message) > len(ERROR_SOURCE_PREFIX):
        return message[len(ERROR_SOURCE_PREFIX):]
    return message


def render(result: str, error: Optional[DispatchError]) -> Optional[Reply]:
    """Translate an outcome; None means nothing is written (empty success)."""
    if error is None:
        if result == "":
            return None
        return Reply(body=result)
    message = strip_error_source(str(error))
    body = json.dumps({"error": message}, ensure_ascii=False, separators=(",", ":"))
    return Reply(body=body, status_code=error.status_code, is_error=True)


# ---- Dispatcher ----
BodyReader = Callable[[], Awaitable[bytes]]


class Dispatcher:
    def __init__(self, endpoints: Sequence[Endpoint], handle: RowHandle):
        self.endpoints = tuple(endpoints)
        self.handle = handle

    async def _run(self, endpoint: Endpoint, verb: Verb,
                   values: Mapping[str, Sequence[str]], body: Optional[bytes]) -> str:
        args: List[str] = []
        if endpoint.params:
            if verb.uses_body:
                args = values_from_body(body or b"", endpoint.params)
            else:
                args = values_from_query(values, endpoint.params)
        try:
            return await execute(self.handle, endpoint.query, args)
        except QueryExecutionError as e:
            _log("ERROR", "query_failed", entity=endpoint.entity,
                 entity_method=endpoint.entity_method, error=str(e))
            raise

    async def dispatch(self, method: str, path: str,
                       values: Optional[Mapping[str, Sequence[str]]] = None,
                       read_body: Optional[BodyReader] = None) -> Optional[Reply]:
        segments = path.split("/")
        if len(segments) < 3:
            return render("", NotFound())
        entity, entity_method = segments[1], segments[2]

        verb = Verb.parse(method)
        if verb is None:
            return render("", NotImplementedVerb())

        body: Optional[bytes] = None
        if verb.uses_body:
            values = {}
            body = await read_body() if read_body is not None else b""
        else:
            values = values or {}

        result, error, found = "", None, False
        for endpoint in self.endpoints:
            if not endpoint.matches(entity, entity_method):
                continue
            declared = endpoint.verb
            if declared is not None and declared is not verb:
                continue
            found = True
            result, error = "", None
            try:
                if declared is None:
                    raise NotImplementedVerb()
                result = await self._run(endpoint, verb, values, body)
            except DispatchError as e:
                error = e

        if not found:
            return render("", NotFound())
        return render(result, error)
