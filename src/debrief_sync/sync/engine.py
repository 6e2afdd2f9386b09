"""
Sync engine: the interface UI collaborators use.

Reads are synchronous lookups in the local store. Every mutation writes the
local store first and then hands the key to the debounced writer, so the UI
sees its own edit immediately and the remote store receives one write per
burst of edits.
"""

from dataclasses import asdict, replace
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..codec.normalize import (
    normalize_departments,
    normalize_periods,
    normalize_roster,
    roster_to_list,
)
from ..codec.record import encode_value
from ..keys import (
    Address,
    ConfigName,
    KeyKind,
    areas_address,
    categories_address,
    config_address,
    description_address,
    review_address,
    slugify,
    tasks_address,
)
from ..models.catalog import (
    Department,
    PeriodKind,
    category_ids,
    classify_period,
    default_areas,
    sort_periods,
)
from ..models.records import (
    AreaSummary,
    ReviewRecord,
    RosterMember,
    Task,
    TaskStatus,
    new_task,
    normalize_tags,
    sort_tasks_for_display,
    summarize_area,
    with_comment,
    with_task_status,
    with_vote,
)
from ..models.records import move_task as reorder_tasks
from ..models.rows import utc_now_iso
from ..remote.base import RemoteStore
from ..roster import color_for, enroll, make_member, resolve_member
from ..storage.preferences import PreferenceStore
from ..store.local_state import LocalStateStore, SaveStatus
from ..utils.config import DebriefConfig
from ..utils.errors import ValidationError
from ..utils.lifecycle import BaseService, ServiceNotReadyError
from ..utils.notifications import NotificationCenter
from .channels import MergeSource, Scope, SyncChannels
from .writer import DebouncedWriter


_CONFIG_NORMALIZERS = {
    ConfigName.PERIODS: normalize_periods,
    ConfigName.DEPARTMENTS: normalize_departments,
    ConfigName.ROSTER: normalize_roster,
}


def _config_to_json(name: ConfigName, value: Any) -> Any:
    if name == ConfigName.DEPARTMENTS:
        return [d.to_dict() for d in value]
    if name == ConfigName.ROSTER:
        return roster_to_list(value)
    return list(value)


class SyncEngine(BaseService):
    """Local-first record store kept in sync with a shared remote table."""

    def __init__(
        self,
        remote: RemoteStore,
        notifier: NotificationCenter,
        config: Optional[DebriefConfig] = None,
        preferences: Optional[PreferenceStore] = None,
    ):
        super().__init__("engine")
        self.remote = remote
        self.notifier = notifier
        self.config = config or DebriefConfig()
        self.preferences = preferences

        sync = self.config.sync
        self.store = LocalStateStore()
        self.writer = DebouncedWriter(
            remote,
            self.store,
            notifier,
            debounce_seconds=sync.debounce_seconds,
            saved_display_seconds=sync.saved_display_seconds,
        )
        self.channels = SyncChannels(
            remote,
            self.store,
            self.writer,
            default_department=self.config.catalog.default_department,
            poll_interval_seconds=sync.poll_interval_seconds,
            protect_debouncing_keys=sync.protect_debouncing_keys,
        )
        self.identity: Optional[str] = None
        self._restoring_cache = False

    # Lifecycle

    async def _initialize(self) -> None:
        if self.preferences is not None:
            self.identity = await self.preferences.get_identity()
        self.store.add_listener(self._on_store_change)
        self.channels.merge_listeners.append(self._on_merge)

    async def _start(self) -> None:
        if self.config.sync.enable_poll:
            self.create_task(self.channels.poll_forever(), name="poll")

    async def _stop(self) -> None:
        await self.writer.close()
        await self.channels.unsubscribe()
        self.store.remove_listener(self._on_store_change)
        if self._on_merge in self.channels.merge_listeners:
            self.channels.merge_listeners.remove(self._on_merge)

    async def _health_check(self) -> Dict[str, Any]:
        scope = self.channels.scope
        return {
            "scope": asdict(scope) if scope else None,
            "keys": len(self.store),
            "pending": len(self.store.pending_keys),
            "pending_writes": self.writer.pending_writes(),
            "save_status": self.store.aggregate_status().value,
        }

    async def open(self, organization: str, period: str, department: Optional[str] = None) -> None:
        """Open a scope: restore cached config, then bulk load from the remote."""
        if not self.is_ready:
            raise ServiceNotReadyError("engine must be initialized before opening a scope")
        department = department or self.config.catalog.default_department
        await self._restore_config_cache(organization)
        await self.channels.open_scope(organization, period, department)
        self.logger.info("scope_opened", organization=organization, period=period, department=department)

    async def set_identity(self, name: str) -> None:
        """Remember who is editing; typing a new name enrolls it on the roster."""
        name = name.strip()
        if not name:
            raise ValidationError("identity", name, "must not be blank")
        self.identity = name
        if self.preferences is not None:
            await self.preferences.set_identity(name)
        if self.channels.scope is not None:
            self.enroll_name(name)

    def notify_visibility(self, visible: bool) -> None:
        """Refresh immediately when the client returns to the foreground."""
        if visible and self.is_running and self.channels.scope is not None:
            self.create_task(self.channels.refresh(), name="visibility-refresh")

    @property
    def scope(self) -> Scope:
        if self.channels.scope is None:
            raise ServiceNotReadyError("no scope is open")
        return self.channels.scope

    @property
    def loading(self) -> bool:
        return self.channels.loading

    # Config cache

    async def _restore_config_cache(self, organization: str) -> None:
        if self.preferences is None:
            return
        cache = await self.preferences.get_config_cache(organization)
        self._restoring_cache = True
        try:
            for name, normalize in _CONFIG_NORMALIZERS.items():
                address = config_address(organization, name)
                if name.value in cache and not self.store.has(address):
                    self.store.put(address, normalize(cache[name.value]))
        finally:
            self._restoring_cache = False

    def _on_store_change(self, kind: KeyKind, key: str) -> None:
        if kind != KeyKind.CONFIG or self._restoring_cache or self.preferences is None:
            return
        address = self.store.address_of(key)
        if address is None or not self.is_ready:
            return
        value = _config_to_json(address.config, self.store.get(address))
        self.create_task(
            self.preferences.set_config_cache(address.organization, address.config.value, value),
            name=f"cache:{key}",
        )

    def _on_merge(self, source: MergeSource, address: Address) -> None:
        self.logger.debug("merged", source=source.value, key=address.key)

    # Reads

    def _department(self, department: Optional[str]) -> str:
        return department or self.scope.department

    def areas(self, department: Optional[str] = None) -> List[str]:
        scope = self.scope
        department = self._department(department)
        address = areas_address(scope.organization, scope.period, department)
        if not self.store.has(address) and department == self.config.catalog.default_department:
            return default_areas(scope.organization)
        return self.store.get(address)

    def area_name(self, area: str, department: Optional[str] = None) -> str:
        slug = slugify(area)
        for name in self.areas(department):
            if slugify(name) == slug:
                return name
        return area

    def review(self, area: str, category: str, department: Optional[str] = None) -> ReviewRecord:
        return self.store.get(self._review_address(area, category, department))

    def reviews_for_area(self, area: str, department: Optional[str] = None) -> Dict[str, ReviewRecord]:
        return {c: self.review(area, c, department) for c in self.categories(area, department)}

    def area_summary(self, area: str, department: Optional[str] = None) -> AreaSummary:
        ids = self.categories(area, department)
        return summarize_area(self.reviews_for_area(area, department), ids)

    def tasks(self, area: str, department: Optional[str] = None) -> List[Task]:
        return self.store.get(self._tasks_address(area, department))

    def tasks_for_display(self, area: str, department: Optional[str] = None) -> List[Task]:
        return sort_tasks_for_display(self.tasks(area, department))

    def description(self, area: str, department: Optional[str] = None) -> str:
        scope = self.scope
        return self.store.get(description_address(
            scope.organization, scope.period, self._department(department), area,
        ))

    def categories(self, area: str, department: Optional[str] = None) -> List[str]:
        """Selected category ids; every catalog category until a selection is saved."""
        scope = self.scope
        selected = self.store.get(categories_address(
            scope.organization, scope.period, self._department(department), area,
        ))
        return list(selected) if selected is not None else category_ids()

    def periods(self) -> List[str]:
        return self.store.get(config_address(self.scope.organization, ConfigName.PERIODS))

    def period_kind(self, period: Optional[str] = None) -> PeriodKind:
        return classify_period(period or self.scope.period, self.config.catalog.current_period)

    def departments(self) -> List[Department]:
        return self.store.get(config_address(self.scope.organization, ConfigName.DEPARTMENTS))

    def roster(self) -> List[RosterMember]:
        return self.store.get(config_address(self.scope.organization, ConfigName.ROSTER))

    def person_color(self, name: str) -> str:
        return color_for(name, self.roster())

    def save_status(self, key: str) -> SaveStatus:
        return self.store.status(key)

    def aggregate_status(self) -> SaveStatus:
        return self.store.aggregate_status()

    # Addresses

    def _review_address(self, area: str, category: str, department: Optional[str]) -> Address:
        scope = self.scope
        return review_address(scope.organization, scope.period, self._department(department), area, category)

    def _tasks_address(self, area: str, department: Optional[str]) -> Address:
        scope = self.scope
        return tasks_address(scope.organization, scope.period, self._department(department), area)

    def review_key(self, area: str, category: str, department: Optional[str] = None) -> str:
        return self._review_address(area, category, department).key

    def tasks_key(self, area: str, department: Optional[str] = None) -> str:
        return self._tasks_address(area, department).key

    # Writes

    def _commit(self, address: Address, value: Any, immediate: bool = False, area_name: str = "") -> str:
        self.store.put(address, value)
        self.writer.submit(
            address.key,
            lambda: encode_value(address, self.store.get(address), area_name),
            immediate=immediate,
        )
        return address.key

    def _author(self, author: Optional[str]) -> str:
        author = (author or self.identity or "").strip()
        if not author:
            raise ValidationError("author", author, "an identity is required for this edit")
        return author

    def save_review_patch(
        self,
        area: str,
        category: str,
        notes: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        department: Optional[str] = None,
    ) -> str:
        """Update a review's notes and/or tags (debounced)."""
        address = self._review_address(area, category, department)
        record = self.store.get(address)
        if notes is not None:
            record.notes = notes
        if tags is not None:
            record.tags = normalize_tags(tags)
        return self._commit(address, record, area_name=self.area_name(area, department))

    def cast_vote(
        self,
        area: str,
        category: str,
        value: Optional[int],
        voter: Optional[str] = None,
        department: Optional[str] = None,
    ) -> str:
        """Set the voter's vote; casting the value already held clears it."""
        voter = self._author(voter)
        address = self._review_address(area, category, department)
        record = self.store.get(address)
        if value is not None and record.votes.get(voter) == value:
            value = None
        record = with_vote(record, voter, value)
        return self._commit(address, record, immediate=True, area_name=self.area_name(area, department))

    def save_comment(
        self,
        area: str,
        category: str,
        field_name: str,
        text: str,
        author: Optional[str] = None,
        department: Optional[str] = None,
    ) -> str:
        """Write the author's entry in a worked-well / needs-improvement thread."""
        author = self._author(author)
        address = self._review_address(area, category, department)
        record = with_comment(self.store.get(address), field_name, author, text, utc_now_iso())
        return self._commit(address, record, area_name=self.area_name(area, department))

    def set_task_list(self, area: str, tasks: Sequence[Task], department: Optional[str] = None) -> str:
        ids = [t.id for t in tasks]
        if len(ids) != len(set(ids)):
            raise ValidationError("tasks", ids, "task ids must be unique")
        address = self._tasks_address(area, department)
        return self._commit(address, list(tasks), area_name=self.area_name(area, department))

    def add_task(
        self,
        area: str,
        label: str,
        department: Optional[str] = None,
        assignees: Optional[Sequence[str]] = None,
        due: Optional[date] = None,
    ) -> Task:
        if not label.strip():
            raise ValidationError("label", label, "must not be blank")
        task = new_task(label, edited_by=self.identity, assignees=list(assignees or []), due=due)
        for name in task.assignees:
            self.enroll_name(name)
        self.set_task_list(area, self.tasks(area, department) + [task], department)
        return task

    def update_task(self, area: str, task_id: str, department: Optional[str] = None, **changes) -> Task:
        """Edit task fields other than id; status changes go through set_task_status."""
        if "id" in changes:
            raise ValidationError("id", changes["id"], "task ids are immutable")
        tasks = self.tasks(area, department)
        for index, task in enumerate(tasks):
            if task.id == task_id:
                break
        else:
            raise KeyError(task_id)
        for name, value in changes.items():
            if not hasattr(task, name):
                raise ValidationError(name, value, "unknown task field")
        if "tags" in changes:
            changes["tags"] = normalize_tags(changes["tags"])
        changes["edited_by"] = changes.get("edited_by") or self.identity or task.edited_by
        task = replace(task, **changes)
        tasks[index] = task
        for name in task.assignees:
            self.enroll_name(name)
        self.set_task_list(area, tasks, department)
        return task

    def remove_task(self, area: str, task_id: str, department: Optional[str] = None) -> str:
        tasks = [t for t in self.tasks(area, department) if t.id != task_id]
        return self.set_task_list(area, tasks, department)

    def set_task_status(
        self,
        area: str,
        task_id: str,
        status: TaskStatus,
        department: Optional[str] = None,
    ) -> str:
        """Change one task's status; written without debounce."""
        address = self._tasks_address(area, department)
        tasks = with_task_status(self.store.get(address), task_id, TaskStatus(status), self.identity)
        return self._commit(address, tasks, immediate=True, area_name=self.area_name(area, department))

    def move_task(self, area: str, task_id: str, new_index: int, department: Optional[str] = None) -> str:
        address = self._tasks_address(area, department)
        tasks = reorder_tasks(self.store.get(address), task_id, new_index)
        return self._commit(address, tasks, area_name=self.area_name(area, department))

    def set_areas(self, names: Sequence[str], department: Optional[str] = None) -> str:
        cleaned: List[str] = []
        seen = set()
        for name in names:
            slug = slugify(name)
            if slug and slug not in seen:
                seen.add(slug)
                cleaned.append(name.strip())
        scope = self.scope
        address = areas_address(scope.organization, scope.period, self._department(department))
        return self._commit(address, cleaned)

    def add_area(self, name: str, department: Optional[str] = None) -> Optional[str]:
        """Append an area; an area whose slug already exists is left alone."""
        if not slugify(name):
            raise ValidationError("area", name, "must contain a letter or digit")
        areas = self.areas(department)
        if any(slugify(existing) == slugify(name) for existing in areas):
            return None
        return self.set_areas(areas + [name], department)

    def remove_area(self, name: str, department: Optional[str] = None) -> str:
        slug = slugify(name)
        return self.set_areas([a for a in self.areas(department) if slugify(a) != slug], department)

    def set_description(self, area: str, text: str, department: Optional[str] = None) -> str:
        scope = self.scope
        address = description_address(scope.organization, scope.period, self._department(department), area)
        return self._commit(address, text, area_name=self.area_name(area, department))

    def set_categories(self, area: str, ids: Sequence[str], department: Optional[str] = None) -> str:
        known = set(category_ids())
        unknown = [c for c in ids if c not in known]
        if unknown:
            raise ValidationError("categories", unknown, "unknown category ids")
        scope = self.scope
        address = categories_address(scope.organization, scope.period, self._department(department), area)
        return self._commit(address, list(dict.fromkeys(ids)), area_name=self.area_name(area, department))

    def _commit_config(self, name: ConfigName, value: Any) -> str:
        return self._commit(config_address(self.scope.organization, name), value)

    def add_period(self, label: str) -> Optional[str]:
        label = str(label).strip()
        if not label:
            raise ValidationError("period", label, "must not be blank")
        periods = self.periods()
        if label in periods:
            return None
        return self._commit_config(ConfigName.PERIODS, sort_periods(periods + [label]))

    def add_department(self, name: str) -> Department:
        """Add a department by display name; an existing id is returned as is."""
        dept_id = slugify(name)
        if not dept_id:
            raise ValidationError("department", name, "must contain a letter or digit")
        departments = self.departments()
        for dept in departments:
            if dept.id == dept_id:
                return dept
        dept = Department(dept_id, name.strip())
        self._commit_config(ConfigName.DEPARTMENTS, departments + [dept])
        return dept

    def add_roster_member(self, name: str, role: str = "") -> RosterMember:
        if not name.strip():
            raise ValidationError("name", name, "must not be blank")
        roster = self.roster()
        member = make_member(name, roster, role)
        self._commit_config(ConfigName.ROSTER, roster + [member])
        return member

    def remove_roster_member(self, member_id: str) -> Optional[str]:
        roster = self.roster()
        remaining = [m for m in roster if m.id != member_id]
        if len(remaining) == len(roster):
            return None
        return self._commit_config(ConfigName.ROSTER, remaining)

    def enroll_name(self, name: str) -> Optional[RosterMember]:
        """Enroll a typed name unless it already resolves to a roster member."""
        roster, added = enroll(name, self.roster())
        if not added:
            return resolve_member(name, roster)
        self._commit_config(ConfigName.ROSTER, roster)
        self.logger.info("roster_enrolled", name=name.strip())
        return roster[-1]


__all__ = ['SyncEngine']
