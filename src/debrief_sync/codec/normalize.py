"""
One normalization function per entity stored as JSON in a notes column.

This is the only place that knows what old data can look like. Every
boundary (bulk load, poll, push, local config cache) goes through these
functions, and none of them raise: unreadable input normalizes to an empty
value.
"""

import hashlib
import json
from datetime import date
from typing import Any, Dict, List, Optional

from ..keys import slugify
from ..models.catalog import Department, sort_periods
from ..models.records import RosterMember, Task, TaskStatus, normalize_tags
from ..roster import assign_color
from ..utils.logging import get_logger


logger = get_logger("debrief-sync.codec")

_STATUS_ALIASES = {
    "todo": TaskStatus.NOT_STARTED,
    "to-do": TaskStatus.NOT_STARTED,
    "open": TaskStatus.NOT_STARTED,
    "doing": TaskStatus.IN_PROGRESS,
    "started": TaskStatus.IN_PROGRESS,
    "complete": TaskStatus.DONE,
    "completed": TaskStatus.DONE,
    "stuck": TaskStatus.BLOCKED,
}


def load_json(raw: Any, default: Any = None) -> Any:
    """Parse a JSON column; already-decoded values pass through."""
    if raw is None or raw == "":
        return default
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug("json_column_unreadable", preview=raw[:40])
        return default


def dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return list(value.values())
    return []


def normalize_area_list(value: Any) -> List[str]:
    """Ordered area names, unique by slug.

    Older rows stored area objects ({id, name, emoji}) instead of names.
    """
    names: List[str] = []
    seen = set()
    for item in _as_list(load_json(value, [])):
        if isinstance(item, dict):
            item = item.get("name") or item.get("id")
        if not isinstance(item, str) or not item.strip():
            continue
        slug = slugify(item)
        if slug and slug not in seen:
            seen.add(slug)
            names.append(item.strip())
    return names


def normalize_categories(value: Any) -> Optional[List[str]]:
    """Selected category ids, or None when nothing was ever selected."""
    raw = load_json(value, None)
    if raw is None:
        return None
    ids: List[str] = []
    for item in _as_list(raw):
        if isinstance(item, dict):
            item = item.get("id")
        if isinstance(item, str) and item.strip() and item.strip() not in ids:
            ids.append(item.strip())
    return ids


def _stable_task_id(index: int, label: str) -> str:
    digest = hashlib.sha1(f"{index}:{label}".encode("utf-8")).hexdigest()
    return f"t-{digest[:10]}"


def _parse_status(raw: Any) -> TaskStatus:
    if isinstance(raw, str):
        cleaned = raw.strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return TaskStatus(cleaned)
        except ValueError:
            return _STATUS_ALIASES.get(cleaned, TaskStatus.NOT_STARTED)
    if raw is True:
        return TaskStatus.DONE
    return TaskStatus.NOT_STARTED


def _parse_due(raw: Any) -> Optional[date]:
    if not isinstance(raw, str) or len(raw) < 10:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def _parse_names(raw: Any) -> List[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        return []
    names: List[str] = []
    for name in raw:
        if isinstance(name, str) and name.strip() and name.strip() not in names:
            names.append(name.strip())
    return names


def normalize_tasks(value: Any) -> List[Task]:
    """Task list with unique, stable ids.

    Tasks stored without ids (plain strings, or early objects) get an id
    derived from position and label so repeated decodes agree.
    """
    tasks: List[Task] = []
    seen_ids = set()
    for index, item in enumerate(_as_list(load_json(value, []))):
        if isinstance(item, str):
            item = {"label": item}
        if not isinstance(item, dict):
            continue
        label = item.get("label") or item.get("text") or item.get("title") or ""
        if not isinstance(label, str):
            label = str(label)
        task_id = item.get("id")
        if not isinstance(task_id, str) or not task_id or task_id in seen_ids:
            task_id = _stable_task_id(index, label)
        seen_ids.add(task_id)

        order = item.get("order")
        status_raw = item.get("status", item.get("done"))
        tasks.append(Task(
            id=task_id,
            label=label,
            status=_parse_status(status_raw),
            assignees=_parse_names(item.get("assignees", item.get("assignee"))),
            notes=item.get("notes") if isinstance(item.get("notes"), str) else "",
            due=_parse_due(item.get("due")),
            tags=normalize_tags(item.get("tags") or []),
            order=order if isinstance(order, int) and not isinstance(order, bool) else None,
            edited_by=item.get("edited_by") if isinstance(item.get("edited_by"), str) else None,
        ))
    return tasks


def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "label": task.label,
        "status": task.status.value,
        "assignees": list(task.assignees),
        "notes": task.notes,
        "due": task.due.isoformat() if task.due else None,
        "tags": list(task.tags),
        "order": task.order,
        "edited_by": task.edited_by,
    }


def normalize_periods(value: Any) -> List[str]:
    """Period labels, de-duplicated and chronologically sorted."""
    raw = load_json(value, [])
    items = list(raw.keys()) if isinstance(raw, dict) else _as_list(raw)
    periods: List[str] = []
    for item in items:
        if isinstance(item, bool) or not isinstance(item, (str, int)):
            continue
        label = str(item).strip()
        if label and label not in periods:
            periods.append(label)
    return sort_periods(periods)


def _department_from(item: Any) -> Optional[Department]:
    if isinstance(item, str) and item.strip():
        return Department(slugify(item), item.strip())
    if isinstance(item, dict):
        name = item.get("name") or item.get("label") or item.get("id")
        dept_id = item.get("id") or (slugify(name) if isinstance(name, str) else None)
        if isinstance(dept_id, str) and dept_id and isinstance(name, str):
            return Department(dept_id, name)
    return None


def normalize_departments(value: Any) -> List[Department]:
    """Department list, unique by id.

    Departments were once stored per period ({"2024": [...], "2025": [...]});
    that shape is flattened in key order.
    """
    raw = load_json(value, [])
    if isinstance(raw, dict) and not ("id" in raw or "name" in raw):
        items: List[Any] = []
        for nested in raw.values():
            items.extend(nested if isinstance(nested, list) else [nested])
    else:
        items = raw if isinstance(raw, list) else [raw]

    departments: List[Department] = []
    seen = set()
    for item in items:
        dept = _department_from(item)
        if dept and dept.id not in seen:
            seen.add(dept.id)
            departments.append(dept)
    return departments


def normalize_roster(value: Any) -> List[RosterMember]:
    """Roster members with unique ids and a color each.

    Bare-name entries and entries missing a color are completed here; the
    colors of existing members are left alone.
    """
    members: List[RosterMember] = []
    seen = set()
    pending_color: List[int] = []
    for item in _as_list(load_json(value, [])):
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        member_id = item.get("id")
        if not isinstance(member_id, str) or not member_id:
            member_id = f"m-{slugify(name)}"
        if member_id in seen:
            continue
        seen.add(member_id)
        color = item.get("color_id") or item.get("color")
        members.append(RosterMember(
            id=member_id,
            name=name.strip(),
            role=item.get("role") if isinstance(item.get("role"), str) else "",
            color_id=color if isinstance(color, str) else "",
        ))
        if not members[-1].color_id:
            pending_color.append(len(members) - 1)

    for index in pending_color:
        member = members[index]
        member.color_id = assign_color(members, member.name)
    return members


def roster_to_list(members: List[RosterMember]) -> List[Dict[str, str]]:
    return [
        {"id": m.id, "name": m.name, "role": m.role, "color_id": m.color_id}
        for m in members
    ]


__all__ = [
    'load_json',
    'dump_json',
    'normalize_area_list',
    'normalize_categories',
    'normalize_tasks',
    'task_to_dict',
    'normalize_periods',
    'normalize_departments',
    'normalize_roster',
    'roster_to_list',
]
