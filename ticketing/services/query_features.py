"""
Query-string driven read queries: filter, sort, search, geo radius, field
projection and pagination over a SQLAlchemy ``Select``.
"""

import enum
import json
import logging
import math
import operator
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from sqlalchemy import ColumnElement, Select, func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.errors import MalformedQuery
from ticketing.utils.dates import to_naive_utc

logger = logging.getLogger(__name__)

RESERVED_PARAMS = frozenset(
    {"page", "sort", "limit", "fields", "paginate", "search", "loc"}
)

OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}

EARTH_RADIUS_MILES = 3963.2
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10

_BRACKET_KEY = re.compile(r"^(?P<field>\w+)\[(?P<op>gte|gt|lte|lt)\]$")
_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    limit: int
    pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.pages = math.ceil(self.total / self.limit) if self.limit else 0


class QueryFeatures:
    """
    Chainable refinements of a read query built from raw query parameters.

    ``names`` maps the wire names a client may use (camelCase or snake_case)
    to model attribute names. ``filter``, ``sort``, ``search`` and ``loc``
    only refine the statement; ``paginate`` and ``all`` run it.
    """

    def __init__(
        self,
        model: Any,
        params: Mapping[str, Any],
        names: Mapping[str, str],
        statement: Optional[Select[Any]] = None,
        search_column: str = "name",
    ) -> None:
        self.model = model
        self.params: Dict[str, Any] = dict(params)
        self.names = names
        self.statement: Select[Any] = (
            statement if statement is not None else select(model)
        )
        self.search_column = search_column
        self.projection: Optional[Set[str]] = None
        self._columns = inspect(model).columns

    def _column(self, name: str) -> Any:
        attr = self.names.get(name)
        if attr is None or attr not in self._columns:
            raise MalformedQuery(f"Invalid query field: {name}.")
        return getattr(self.model, attr)

    def _coerce(self, column: Any, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        try:
            python_type = column.type.python_type
        except NotImplementedError:
            return value

        try:
            if issubclass(python_type, bool):
                lowered = value.lower()
                if lowered in _TRUE:
                    return True
                if lowered in _FALSE:
                    return False
                raise ValueError(value)
            if issubclass(python_type, enum.Enum):
                return python_type(value)
            if issubclass(python_type, datetime):
                return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
            if python_type in (int, float):
                return python_type(value)
        except ValueError:
            raise MalformedQuery(f"Invalid value for {column.key}: {value}.")
        return value

    def _conditions(self) -> List[ColumnElement[bool]]:
        conditions: List[ColumnElement[bool]] = []
        for key, value in self.params.items():
            if key in RESERVED_PARAMS:
                continue

            match = _BRACKET_KEY.match(key)
            if match:
                column = self._column(match.group("field"))
                compare = OPERATORS[match.group("op")]
                conditions.append(compare(column, self._coerce(column, value)))
                continue

            column = self._column(key)
            if isinstance(value, Mapping):
                for op, operand in value.items():
                    if op not in OPERATORS:
                        raise MalformedQuery(f"Invalid query operator: {op}.")
                    conditions.append(
                        OPERATORS[op](column, self._coerce(column, operand))
                    )
            else:
                conditions.append(column == self._coerce(column, value))
        return conditions

    def filter(self) -> "QueryFeatures":
        conditions = self._conditions()
        if conditions:
            self.statement = self.statement.where(*conditions)
        return self

    def search(self) -> "QueryFeatures":
        term = self.params.get("search")
        if term:
            column = getattr(self.model, self.search_column)
            # % and _ in the term are literal characters
            self.statement = self.statement.where(
                column.icontains(str(term), autoescape=True)
            )
        return self

    def sort(self) -> "QueryFeatures":
        spec = self.params.get("sort")
        order_by = []
        if spec:
            for token in str(spec).split(","):
                token = token.strip()
                if not token:
                    continue
                descending = token.startswith("-")
                column = self._column(token.lstrip("-"))
                order_by.append(column.desc() if descending else column.asc())
        elif "created_at" in self._columns:
            order_by.append(self.model.created_at.desc())
        order_by.append(self.model.id.desc())
        self.statement = self.statement.order_by(*order_by)
        return self

    def limit(self) -> "QueryFeatures":
        """Field projection applied when results are serialized"""
        spec = self.params.get("fields")
        if spec:
            requested = [name.strip() for name in str(spec).split(",")]
            self.projection = {
                self.names[name] for name in requested if name in self.names
            }
            self.projection.add("id")
        return self

    def loc(self, columns: Tuple[str, str] = ("longitude", "latitude")) -> "QueryFeatures":
        raw = self.params.get("loc")
        if not raw:
            return self

        try:
            location = raw if isinstance(raw, Mapping) else json.loads(raw)
            lon0, lat0 = (float(part) for part in str(location["center"]).split(","))
            radius = float(location["radius"])
        except (TypeError, ValueError, KeyError) as e:
            raise MalformedQuery(f"Invalid location query: {e}")

        # equirectangular approximation of a spherical cap
        radius_deg = math.degrees(radius / EARTH_RADIUS_MILES)
        lon_scale = math.cos(math.radians(lat0))
        lon_col = getattr(self.model, columns[0])
        lat_col = getattr(self.model, columns[1])
        d_lat = lat_col - lat0
        d_lon = (lon_col - lon0) * lon_scale
        self.statement = self.statement.where(
            lon_col.is_not(None),
            lat_col.is_not(None),
            d_lat * d_lat + d_lon * d_lon <= radius_deg * radius_deg,
        )
        return self

    def apply(self) -> "QueryFeatures":
        return self.filter().search().loc().sort().limit()

    def pagination(self) -> Optional[Tuple[int, int]]:
        raw = self.params.get("paginate")
        if raw is None or raw == "":
            return None
        try:
            options = raw if isinstance(raw, Mapping) else json.loads(raw)
        except (TypeError, ValueError) as e:
            raise MalformedQuery(f"Invalid pagination options: {e}")
        if not isinstance(options, Mapping):
            raise MalformedQuery("Invalid pagination options.")
        return (
            _positive_int(options.get("page"), DEFAULT_PAGE),
            _positive_int(options.get("limit"), DEFAULT_PAGE_SIZE),
        )

    async def paginate(self, db: AsyncSession, page: int, limit: int) -> Page:
        count_stmt = select(func.count()).select_from(
            self.statement.order_by(None).subquery()
        )
        total = (await db.execute(count_stmt)).scalar_one()
        result = await db.execute(
            self.statement.offset((page - 1) * limit).limit(limit)
        )
        return Page(items=list(result.scalars().all()), total=total, page=page, limit=limit)

    async def all(self, db: AsyncSession) -> List[Any]:
        result = await db.execute(self.statement)
        return list(result.scalars().all())

    async def execute(self, db: AsyncSession) -> Tuple[List[Any], Optional[Page]]:
        """Run the query; paginated only when ``paginate`` was supplied"""
        options = self.pagination()
        if options is None:
            return await self.all(db), None
        page = await self.paginate(db, *options)
        logger.debug(
            "Paginated query",
            extra={"page": page.page, "limit": page.limit, "total": page.total},
        )
        return page.items, page


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default
