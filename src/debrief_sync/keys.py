"""
Composite key construction and row addressing.

Every value in the local state store is addressed by a composite key built
from (organization, period, department, area, category-or-kind). Each kind
of value has its own key namespace, so the same scope tuple never collides
across kinds.

Keys are never split to recover their parts. Going from a remote row back
to an address uses the row's raw columns, stripping the department prefix
from ``area_id``, because area slugs may contain any separator.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .models.rows import RemoteRow


AREA_PREFIX_SEPARATOR = ":"
KEY_SEPARATOR = "/"

CONFIG_PERIOD = "__config__"
CONFIG_AREA_ID = "__config__"

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^a-z0-9-]")
_IDENTIFIER = re.compile(r"^[a-z0-9_-]+$")


class KeyKind(str, Enum):
    """Key namespaces, one per kind of stored value."""
    REVIEW = "review"
    TASKS = "tasks"
    AREAS = "areas"
    DESCRIPTION = "description"
    CATEGORIES = "categories"
    CONFIG = "config"


class ConfigName(str, Enum):
    """Organization-level config records and their reserved category ids."""
    PERIODS = "__years__"
    DEPARTMENTS = "__depts__"
    ROSTER = "__roster__"


# Reserved category ids of placeholder rows
SENTINEL_CATEGORIES = {
    KeyKind.AREAS: "__areas__",
    KeyKind.TASKS: "__tasks__",
    KeyKind.DESCRIPTION: "__description__",
    KeyKind.CATEGORIES: "__categories__",
}
_KIND_BY_SENTINEL = {v: k for k, v in SENTINEL_CATEGORIES.items()}
_CONFIG_BY_SENTINEL = {c.value: c for c in ConfigName}


def slugify(text: str) -> str:
    """URL-safe slug: lowercase, whitespace runs to '-', drop other characters."""
    return _UNSAFE.sub("", _WHITESPACE.sub("-", text.strip().lower()))


def category_slug(category: str) -> str:
    """Catalog ids (which may hold underscores) pass through; typed names are slugged."""
    if _IDENTIFIER.match(category):
        return category
    return slugify(category)


@dataclass(frozen=True)
class Address:
    """Where a value lives, both in the local store and in the remote table."""
    kind: KeyKind
    organization: str
    period: str = ""
    department: str = ""
    area: str = ""
    category: str = ""
    config: Optional[ConfigName] = None

    @property
    def key(self) -> str:
        if self.kind == KeyKind.CONFIG:
            parts = (self.organization, self.config.value)
        elif self.kind == KeyKind.REVIEW:
            parts = (self.organization, self.period, self.department, self.area, self.category)
        elif self.kind == KeyKind.AREAS:
            parts = (self.organization, self.period, self.department)
        else:
            parts = (self.organization, self.period, self.department, self.area)
        return f"{self.kind.value}:{KEY_SEPARATOR.join(parts)}"

    @property
    def remote_period(self) -> str:
        return CONFIG_PERIOD if self.kind == KeyKind.CONFIG else self.period

    @property
    def area_id(self) -> str:
        """The row's area_id column: department-prefixed area slug."""
        if self.kind == KeyKind.CONFIG:
            return CONFIG_AREA_ID
        area = SENTINEL_CATEGORIES[KeyKind.AREAS] if self.kind == KeyKind.AREAS else self.area
        return f"{self.department}{AREA_PREFIX_SEPARATOR}{area}"

    @property
    def category_id(self) -> str:
        if self.kind == KeyKind.CONFIG:
            return self.config.value
        if self.kind == KeyKind.REVIEW:
            return self.category
        return SENTINEL_CATEGORIES[self.kind]

    def blank_row(self, area_name: str = "") -> RemoteRow:
        """A row carrying only this address; the codec fills in the payload."""
        return RemoteRow(
            organization=self.organization,
            period=self.remote_period,
            department_tag="" if self.kind == KeyKind.CONFIG else self.department,
            area_id=self.area_id,
            area_name=area_name,
            category_id=self.category_id,
        )


def review_address(org: str, period: str, department: str, area: str, category: str) -> Address:
    return Address(KeyKind.REVIEW, org, period, department, slugify(area), category_slug(category))


def tasks_address(org: str, period: str, department: str, area: str) -> Address:
    return Address(KeyKind.TASKS, org, period, department, slugify(area))


def areas_address(org: str, period: str, department: str) -> Address:
    return Address(KeyKind.AREAS, org, period, department)


def description_address(org: str, period: str, department: str, area: str) -> Address:
    return Address(KeyKind.DESCRIPTION, org, period, department, slugify(area))


def categories_address(org: str, period: str, department: str, area: str) -> Address:
    return Address(KeyKind.CATEGORIES, org, period, department, slugify(area))


def config_address(org: str, name: ConfigName) -> Address:
    return Address(KeyKind.CONFIG, org, config=name)


def review_key(org: str, period: str, department: str, area: str, category: str) -> str:
    return review_address(org, period, department, area, category).key


def tasks_key(org: str, period: str, department: str, area: str) -> str:
    return tasks_address(org, period, department, area).key


def areas_key(org: str, period: str, department: str) -> str:
    return areas_address(org, period, department).key


def description_key(org: str, period: str, department: str, area: str) -> str:
    return description_address(org, period, department, area).key


def categories_key(org: str, period: str, department: str, area: str) -> str:
    return categories_address(org, period, department, area).key


def config_key(org: str, name: ConfigName) -> str:
    return config_address(org, name).key


def address_from_row(
    row: RemoteRow,
    default_department: str,
    known_departments: Iterable[str] = (),
) -> Address:
    """Recover an address from a row's raw columns.

    Rows without a department tag or prefix predate departments and belong
    to the default department.
    """
    config = _CONFIG_BY_SENTINEL.get(row.category_id)
    if config is not None:
        return Address(KeyKind.CONFIG, row.organization, config=config)

    department = row.department_tag
    area = row.area_id
    if department:
        prefix = f"{department}{AREA_PREFIX_SEPARATOR}"
        if area.startswith(prefix):
            area = area[len(prefix):]
    else:
        for candidate in known_departments:
            prefix = f"{candidate}{AREA_PREFIX_SEPARATOR}"
            if area.startswith(prefix):
                department = candidate
                area = area[len(prefix):]
                break
        else:
            department = default_department

    kind = _KIND_BY_SENTINEL.get(row.category_id, KeyKind.REVIEW)
    if kind == KeyKind.AREAS:
        return Address(kind, row.organization, row.period, department)
    if kind == KeyKind.REVIEW:
        return Address(kind, row.organization, row.period, department, area, row.category_id)
    return Address(kind, row.organization, row.period, department, area)


__all__ = [
    'KeyKind',
    'ConfigName',
    'Address',
    'CONFIG_PERIOD',
    'SENTINEL_CATEGORIES',
    'slugify',
    'category_slug',
    'review_address',
    'tasks_address',
    'areas_address',
    'description_address',
    'categories_address',
    'config_address',
    'review_key',
    'tasks_key',
    'areas_key',
    'description_key',
    'categories_key',
    'config_key',
    'address_from_row',
]
