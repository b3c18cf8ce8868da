"""In-memory stand-in for the parts of the supabase-py Client the services use.

Supports table queries (select / insert / upsert / update / delete with
eq, neq, gt, gte, lt, lte, in_, is_, ilike, or_, order, range, limit and
exact counts) and the four Supabase Auth calls the auth module makes.
Timestamps stored as ISO strings are compared as datetimes.
"""

import copy
import operator
import re
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]], count: Optional[int] = None):
        self.data = data
        self.count = count


def _coerce(value: Any) -> Any:
    if isinstance(value, str) and len(value) >= 10 and value[4:5] == "-" and value[7:8] == "-":
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


def _compare(left: Any, right: Any, op) -> bool:
    if left is None or right is None:
        return False
    left, right = _coerce(left), _coerce(right)
    if isinstance(left, datetime) != isinstance(right, datetime):
        left, right = str(left), str(right)
    try:
        return op(left, right)
    except TypeError:
        return False


# column.operator.value, where value is either "quoted" or runs to the next comma
_OR_CLAUSE = re.compile(r'\s*([^,.]+)\.([a-z]+)\.("(?:[^"\\]|\\.)*"|[^,]*)')


def _like(pattern: str, flags: int = 0):
    regex = "".join(".*" if ch == "%" else "." if ch == "_" else re.escape(ch) for ch in pattern)
    compiled = re.compile(regex, flags | re.DOTALL)
    return lambda value: value is not None and compiled.fullmatch(str(value)) is not None


def _sort_key(value: Any):
    if value is None:
        return (1, "")
    return (0, _coerce(value))


class FakeQuery:
    def __init__(self, client: "FakeSupabase", table: str):
        self.client = client
        self.table_name = table
        self._op = "select"
        self._columns = "*"
        self._count: Optional[str] = None
        self._payload: Any = None
        self._on_conflict = "id"
        self._filters: List = []
        self._orders: List = []
        self._range: Optional[tuple] = None
        self._limit: Optional[int] = None

    # Operations

    def select(self, columns: str = "*", count: Optional[str] = None, **kwargs):
        if self._op == "select":
            self._columns = columns
        self._count = count
        return self

    def insert(self, rows, **kwargs):
        self._op = "insert"
        self._payload = rows
        return self

    def upsert(self, rows, on_conflict: str = "id", **kwargs):
        self._op = "upsert"
        self._payload = rows
        self._on_conflict = on_conflict
        return self

    def update(self, values: Dict[str, Any], **kwargs):
        self._op = "update"
        self._payload = values
        return self

    def delete(self, **kwargs):
        self._op = "delete"
        return self

    # Filters

    def _where(self, predicate):
        self._filters.append(predicate)
        return self

    def eq(self, column: str, value: Any):
        return self._where(lambda row: row.get(column) == value)

    def neq(self, column: str, value: Any):
        return self._where(lambda row: row.get(column) != value)

    def gt(self, column: str, value: Any):
        return self._where(lambda row: _compare(row.get(column), value, operator.gt))

    def gte(self, column: str, value: Any):
        return self._where(lambda row: _compare(row.get(column), value, operator.ge))

    def lt(self, column: str, value: Any):
        return self._where(lambda row: _compare(row.get(column), value, operator.lt))

    def lte(self, column: str, value: Any):
        return self._where(lambda row: _compare(row.get(column), value, operator.le))

    def in_(self, column: str, values):
        allowed = list(values)
        return self._where(lambda row: row.get(column) in allowed)

    def is_(self, column: str, value: Any):
        expected = {"null": None, "true": True, "false": False}.get(str(value).lower(), value)
        if expected is None:
            return self._where(lambda row: row.get(column) is None)
        return self._where(lambda row: row.get(column) is expected)

    def ilike(self, column: str, pattern: str):
        matches = _like(pattern, re.IGNORECASE)
        return self._where(lambda row: matches(row.get(column)))

    def like(self, column: str, pattern: str):
        matches = _like(pattern)
        return self._where(lambda row: matches(row.get(column)))

    def or_(self, filters: str):
        checks = []
        for column, op, value in _OR_CLAUSE.findall(filters):
            if value.startswith('"'):
                value = re.sub(r"\\(.)", r"\1", value[1:-1])
            if op == "ilike":
                matches = _like(value, re.IGNORECASE)
                checks.append(lambda row, c=column, m=matches: m(row.get(c)))
            elif op == "eq":
                checks.append(lambda row, c=column, v=value: str(row.get(c)) == v)
            else:
                raise NotImplementedError(f"or_ operator {op}")
        return self._where(lambda row: any(check(row) for check in checks))

    # Modifiers

    def order(self, column: str, desc: bool = False, **kwargs):
        self._orders.append((column, desc))
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def limit(self, size: int):
        self._limit = size
        return self

    # Execution

    def _matching(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [row for row in rows if all(predicate(row) for predicate in self._filters)]

    def _project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if self._columns.strip() == "*":
            return copy.deepcopy(row)
        columns = [c.strip() for c in self._columns.split(",") if c.strip()]
        return {c: copy.deepcopy(row.get(c)) for c in columns}

    def execute(self) -> FakeResponse:
        self.client.check_failure(self.table_name, self._op)
        rows = self.client.rows(self.table_name)
        self.client.log.append((self.table_name, self._op, copy.deepcopy(self._payload)))

        if self._op == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = [self.client.add_row(self.table_name, row) for row in payload]
            return FakeResponse([copy.deepcopy(r) for r in inserted])

        if self._op == "upsert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            keys = [k.strip() for k in self._on_conflict.split(",")]
            result = []
            for new in payload:
                existing = None
                if all(new.get(k) is not None for k in keys):
                    existing = next((r for r in rows if all(r.get(k) == new.get(k) for k in keys)), None)
                if existing:
                    existing.update(copy.deepcopy(new))
                    result.append(copy.deepcopy(existing))
                else:
                    result.append(copy.deepcopy(self.client.add_row(self.table_name, new)))
            return FakeResponse(result)

        matched = self._matching(rows)

        if self._op == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return FakeResponse([copy.deepcopy(r) for r in matched])

        if self._op == "delete":
            for row in matched:
                rows.remove(row)
            return FakeResponse([copy.deepcopy(r) for r in matched])

        count = len(matched) if self._count else None
        ordered = list(matched)
        for column, desc in reversed(self._orders):
            ordered.sort(key=lambda r, c=column: _sort_key(r.get(c)), reverse=desc)
        if self._range:
            ordered = ordered[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            ordered = ordered[:self._limit]
        return FakeResponse([self._project(r) for r in ordered], count)


class FakeAuth:
    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self.get_user_calls = 0
        self.sign_out_calls = 0

    @staticmethod
    def _user(user: Dict[str, Any]):
        return SimpleNamespace(
            id=user["id"],
            email=user["email"],
            user_metadata=user.get("user_metadata") or {},
            app_metadata={},
            created_at=user.get("created_at"),
        )

    def sign_up(self, credentials: Dict[str, Any]):
        email = credentials["email"]
        if email in self.users:
            raise Exception("User already registered")
        user = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password": credentials["password"],
            "user_metadata": (credentials.get("options") or {}).get("data") or {},
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.users[email] = user
        return SimpleNamespace(user=self._user(user), session=None)

    def sign_in_with_password(self, credentials: Dict[str, Any]):
        user = self.users.get(credentials["email"])
        if not user or user["password"] != credentials["password"]:
            raise Exception("Invalid login credentials")
        token = self.issue_token(user)
        return SimpleNamespace(user=self._user(user), session=SimpleNamespace(access_token=token))

    def issue_token(self, user: Dict[str, Any]) -> str:
        token = f"token-{uuid.uuid4().hex}"
        self.tokens[token] = user
        return token

    def get_user(self, jwt: Optional[str] = None):
        self.get_user_calls += 1
        user = self.tokens.get(jwt)
        if not user:
            raise Exception("invalid JWT: unable to parse or verify signature")
        return SimpleNamespace(user=self._user(user))

    def sign_out(self):
        self.sign_out_calls += 1


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.auth = FakeAuth()
        self.log: List[tuple] = []
        self._failures: Dict[tuple, str] = {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def add_row(self, name: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        self.rows(name).append(stored)
        return stored

    def seed(self, name: str, *rows: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [copy.deepcopy(self.add_row(name, row)) for row in rows]

    def fail(self, table: str, op: str, message: str = "simulated database failure"):
        self._failures[(table, op)] = message

    def check_failure(self, table: str, op: str):
        message = self._failures.get((table, op))
        if message:
            raise Exception(message)

    def ops(self, table: str, op: str) -> List[Any]:
        return [payload for t, o, payload in self.log if t == table and o == op]
