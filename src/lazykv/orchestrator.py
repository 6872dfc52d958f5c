"""Cascading selection controller.

The orchestrator owns the selection path (account, subscription or group,
resource, secret) and the load state of every level.  A selection change
clears everything below it and dispatches the next level's fetch to a worker.
Completions are posted back to the UI loop and applied only if the load that
produced them is still the current one for its level, so a slow fetch for a
superseded selection can never overwrite the data of the current one.

The orchestrator never touches widgets; it reports through an
``OrchestratorView``.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from typing import Any, Protocol

from lazykv.bulk import BulkLoad, BulkLoader
from lazykv.domain.grouping import (
    first_selectable,
    group_subscriptions,
    subscriptions_for,
    unique_owners,
)
from lazykv.fetchers import ResourceFetchers
from lazykv.models import (
    Account,
    FetchError,
    FetchResult,
    MutationKind,
    MutationRequest,
    MutationResult,
    Progress,
    Resource,
    ResourceKind,
    SecretMeta,
    SecretValue,
    SubscriptionEntry,
)

logger = logging.getLogger(__name__)

Submit = Callable[[Callable[[], Any]], Future]
Post = Callable[[Callable[[], None]], None]


class Level(IntEnum):
    ACCOUNT = 0
    SUBSCRIPTION = 1
    RESOURCE = 2
    SECRET = 3
    VALUE = 4


class LoadState(Enum):
    IDLE = auto()
    LOADING = auto()
    LOADED = auto()
    ERROR = auto()


@dataclass
class LevelState:
    """Contents and load status of one panel."""

    items: list[Any] = field(default_factory=list)
    selected: int | None = None
    state: LoadState = LoadState.IDLE
    error: FetchError | None = None
    generation: int = 0
    cached: bool = False
    show_indicator: bool = False
    warning: str | None = None

    @property
    def selected_item(self) -> Any:
        if self.selected is None or not 0 <= self.selected < len(self.items):
            return None
        return self.items[self.selected]

    def reset(self) -> None:
        self.items = []
        self.selected = None
        self.state = LoadState.IDLE
        self.error = None
        self.cached = False
        self.show_indicator = False
        self.warning = None
        self.generation += 1


@dataclass(frozen=True)
class LoadToken:
    """Identifies one dispatched load.

    ``identity`` names the parent selection the load was made for.
    """

    level: Level
    generation: int
    identity: str | None


class OrchestratorView(Protocol):
    def show_level(self, level: Level, state: LevelState) -> None: ...

    def show_status(self, message: str) -> None: ...

    def show_progress(self, event: Progress) -> None:
        """A background warm-up made progress."""
        ...

    def show_mutation(self, result: MutationResult) -> None: ...


def _identity(level: Level, item: Any) -> str | None:
    if item is None:
        return None
    if level is Level.ACCOUNT:
        return item.owner
    if level is Level.SUBSCRIPTION:
        return item.key
    if level is Level.RESOURCE:
        return item.id
    if level is Level.SECRET:
        return item.name
    return None


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


class SelectionOrchestrator:
    """Drives the account → subscription → resource → secret → value cascade.

    Args:
        fetchers: Cache-aside loads.
        view: Receives state changes; always called on the UI loop.
        submit: Runs a callable on a worker and returns its Future.
        post: Schedules a callable on the UI loop (thread-safe).
        bulk_loader: Used for group fan-out and background warm-up.
    """

    def __init__(
        self,
        fetchers: ResourceFetchers,
        view: OrchestratorView,
        submit: Submit,
        post: Post,
        bulk_loader: BulkLoader | None = None,
    ) -> None:
        self._fetchers = fetchers
        self._view = view
        self._submit = submit
        self._post = post
        self._bulk = bulk_loader or BulkLoader()
        self.levels: dict[Level, LevelState] = {level: LevelState() for level in Level}
        self._accounts: list[Account] = []
        self._all_secrets: list[SecretMeta] = []
        self._filter = ""
        self._restore: dict[Level, tuple[str | None, int]] = {}
        self._restoring = False
        self._warmup: BulkLoad | None = None
        self._warmup_generation = 0

    # ------------------------------------------------------------------
    # Current selection
    # ------------------------------------------------------------------

    @property
    def selected_account(self) -> Account | None:
        return self.levels[Level.ACCOUNT].selected_item

    @property
    def selected_entry(self) -> SubscriptionEntry | None:
        return self.levels[Level.SUBSCRIPTION].selected_item

    @property
    def selected_resource(self) -> Resource | None:
        return self.levels[Level.RESOURCE].selected_item

    @property
    def selected_secret(self) -> SecretMeta | None:
        return self.levels[Level.SECRET].selected_item

    @property
    def secret_value(self) -> SecretValue | None:
        return self.levels[Level.VALUE].selected_item

    @property
    def filter(self) -> str:
        return self._filter

    @property
    def secret_names(self) -> set[str]:
        """Names of every secret of the selected resource, ignoring the filter."""
        return {s.name for s in self._all_secrets}

    def subscription_name(self, subscription_id: str) -> str:
        for account in self._accounts:
            if account.id == subscription_id:
                return account.name
        return subscription_id

    @property
    def warming_up(self) -> bool:
        return self._warmup is not None and not self._warmup.done

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def refresh(self, force: bool = True) -> None:
        """Reload from the top, restoring the current selection path.

        With *force* every cache is dropped first, so every level is fetched
        from the source again.
        """
        self._restore = {}
        for level in (Level.ACCOUNT, Level.SUBSCRIPTION, Level.RESOURCE, Level.SECRET):
            state = self.levels[level]
            if state.selected is not None:
                self._restore[level] = (_identity(level, state.selected_item), state.selected)
        self.cancel_background(quiet=True)
        if force:
            self._fetchers.clear()
            logger.info("full refresh, caches cleared")
        self._clear_from(Level.ACCOUNT)
        self._view.show_status("Loading accounts...")
        token = self._begin(Level.ACCOUNT, None, self._fetchers.are_accounts_cached())
        self._dispatch(token, self._fetchers.load_accounts, self._apply_accounts)

    def select(self, level: Level, index: int, force: bool = False) -> None:
        """Select row *index* of *level*."""
        handlers = {
            Level.ACCOUNT: self.select_account,
            Level.SUBSCRIPTION: self.select_subscription,
            Level.RESOURCE: self.select_resource,
            Level.SECRET: self.select_secret,
        }
        handler = handlers.get(level)
        if handler is not None:
            handler(index, force=force)

    def select_account(self, index: int, force: bool = False) -> None:
        state = self.levels[Level.ACCOUNT]
        if not self._accept(Level.ACCOUNT, index, force):
            return
        state.selected = index
        self._view.show_level(Level.ACCOUNT, state)
        self._clear_from(Level.SUBSCRIPTION)
        account = state.items[index]
        self._fetchers.source.switch_tenant(account.tenant_id)

        # Subscriptions come with the account list; nothing to fetch.
        subscriptions = subscriptions_for(self._accounts, account.owner)
        sub_state = self.levels[Level.SUBSCRIPTION]
        sub_state.items = group_subscriptions(subscriptions)
        sub_state.state = LoadState.LOADED
        sub_state.cached = True
        self._view.show_level(Level.SUBSCRIPTION, sub_state)
        self._view.show_status(f"Found {_plural(len(subscriptions), 'subscription')} for {account.owner}")

        self._cascade(Level.SUBSCRIPTION)
        # The selected row's own load is already in flight.
        entry = self.selected_entry
        loading = set(entry.subscription_ids) if entry is not None else set()
        self._start_warmup([s.id for s in subscriptions if s.id not in loading])

    def select_subscription(self, index: int, force: bool = False) -> None:
        state = self.levels[Level.SUBSCRIPTION]
        if not self._accept(Level.SUBSCRIPTION, index, force):
            return
        state.selected = index
        self._view.show_level(Level.SUBSCRIPTION, state)
        self._clear_from(Level.RESOURCE)
        entry: SubscriptionEntry = state.items[index]
        ids = entry.subscription_ids
        cached = all(self._fetchers.are_resources_cached(i) for i in ids)
        token = self._begin(Level.RESOURCE, entry.key, cached)
        self._view.show_status(f"Loading resources for {entry.label.rstrip(':')}...")
        if entry.is_group:
            self._dispatch(token, lambda: self._load_group(ids), self._apply_resources)
        else:
            self._dispatch(token, lambda: self._fetchers.load_resources(ids[0]), self._apply_resources)

    def select_resource(self, index: int, force: bool = False) -> None:
        state = self.levels[Level.RESOURCE]
        if not self._accept(Level.RESOURCE, index, force):
            return
        state.selected = index
        self._view.show_level(Level.RESOURCE, state)
        self._clear_from(Level.SECRET)
        resource: Resource = state.items[index]
        token = self._begin(Level.SECRET, resource.id, self._fetchers.are_secrets_cached(resource))
        self._view.show_status(f"Loading secrets from {resource.name}...")
        self._dispatch(token, lambda: self._fetchers.load_secrets(resource), self._apply_secrets)

    def select_secret(self, index: int, force: bool = False) -> None:
        state = self.levels[Level.SECRET]
        if not self._accept(Level.SECRET, index, force):
            return
        state.selected = index
        self._view.show_level(Level.SECRET, state)
        self._clear_from(Level.VALUE)
        resource = self.selected_resource
        secret: SecretMeta = state.items[index]
        if resource is None:
            return
        cached = self._fetchers.is_secret_value_cached(resource, secret.name)
        token = self._begin(Level.VALUE, secret.name, cached)
        self._dispatch(
            token,
            lambda: self._fetchers.load_secret_value(resource, secret.name),
            self._apply_value,
        )

    def set_filter(self, query: str) -> None:
        """Narrow the secrets list to names containing *query*.

        The selected secret stays selected when it survives the filter.
        """
        self._filter = query
        state = self.levels[Level.SECRET]
        if state.state is not LoadState.LOADED:
            return
        current = state.selected_item
        state.items = self._filtered(self._all_secrets)
        names = [s.name for s in state.items]
        if current is not None and current.name in names:
            state.selected = names.index(current.name)
            self._view.show_level(Level.SECRET, state)
            return
        state.selected = None
        self._clear_from(Level.VALUE)
        self._view.show_level(Level.SECRET, state)
        if state.items:
            self.select_secret(0)

    def mutate(self, request: MutationRequest) -> None:
        """Apply a SET or DELETE in the background and reload what it touched."""
        verb = "Deleting" if request.kind is MutationKind.DELETE else "Saving"
        self._view.show_status(f"{verb} {request.name} in {request.resource.name}...")
        future = self._submit(lambda: self._fetchers.apply(request))
        future.add_done_callback(lambda f: self._post(lambda: self._mutation_done(request, f)))

    def cancel_background(self, quiet: bool = False) -> None:
        """Stop the background resource warm-up, if one is running."""
        if self._warmup is None or self._warmup.done:
            if not quiet:
                self._view.show_status("No background loading in progress")
            return
        self._warmup.cancel()
        self._warmup_generation += 1
        if not quiet:
            self._view.show_status("Background loading cancelled")

    def shutdown(self) -> None:
        self.cancel_background(quiet=True)

    # ------------------------------------------------------------------
    # Staleness guard
    # ------------------------------------------------------------------

    def is_current(self, token: LoadToken) -> bool:
        state = self.levels[token.level]
        if token.generation != state.generation:
            return False
        if token.level is Level.ACCOUNT:
            return True
        parent = Level(token.level - 1)
        return _identity(parent, self.levels[parent].selected_item) == token.identity

    def apply_if_current(
        self,
        token: LoadToken,
        result: FetchResult,
        apply: Callable[[FetchResult], None],
    ) -> bool:
        """Apply *result* only when *token* still describes the current load."""
        if not self.is_current(token):
            logger.debug(
                "discarding stale %s result for %s (generation %d)",
                token.level.name.lower(),
                token.identity,
                token.generation,
            )
            return False
        apply(result)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _accept(self, level: Level, index: int, force: bool) -> bool:
        state = self.levels[level]
        if not 0 <= index < len(state.items):
            return False
        if not force and state.selected == index:
            return False
        if not self._restoring:
            # A manual selection abandons the saved path below it.
            self._forget_restore(Level(level + 1))
        return True

    def _forget_restore(self, level: Level) -> None:
        """Drop saved restore entries for *level* and every level below it."""
        self._restore = {lvl: saved for lvl, saved in self._restore.items() if lvl < level}

    def _clear_from(self, level: Level) -> None:
        for lvl in Level:
            if lvl >= level:
                self.levels[lvl].reset()
                self._view.show_level(lvl, self.levels[lvl])

    def _begin(self, level: Level, identity: str | None, cached: bool) -> LoadToken:
        state = self.levels[level]
        state.generation += 1
        state.state = LoadState.LOADING
        state.error = None
        state.show_indicator = not cached
        self._view.show_level(level, state)
        return LoadToken(level=level, generation=state.generation, identity=identity)

    def _dispatch(
        self,
        token: LoadToken,
        work: Callable[[], FetchResult],
        apply: Callable[[FetchResult], None],
    ) -> None:
        future = self._submit(work)
        future.add_done_callback(lambda f: self._post(lambda: self._complete(token, f, apply)))

    def _complete(self, token: LoadToken, future: Future, apply: Callable[[FetchResult], None]) -> None:
        try:
            result = future.result()
        except Exception as exc:
            logger.exception("%s load failed unexpectedly", token.level.name.lower())
            result = FetchResult.failure(FetchError.from_exception(exc))
        self.apply_if_current(token, result, apply)

    def _fail(self, level: Level, result: FetchResult) -> bool:
        state = self.levels[level]
        state.show_indicator = False
        if result.ok:
            return False
        self._forget_restore(level)
        state.state = LoadState.ERROR
        state.error = result.error
        self._view.show_level(level, state)
        self._view.show_status(f"{result.error.title}: {result.error.message}")
        return True

    def _loaded(self, level: Level, items: list[Any], result: FetchResult) -> LevelState:
        state = self.levels[level]
        state.items = items
        state.state = LoadState.LOADED
        state.cached = result.cached
        state.warning = result.warning
        self._view.show_level(level, state)
        return state

    def _apply_accounts(self, result: FetchResult) -> None:
        if self._fail(Level.ACCOUNT, result):
            return
        self._accounts = list(result.value or [])
        owners = unique_owners(self._accounts)
        self._loaded(Level.ACCOUNT, owners, result)
        suffix = " (cached)" if result.cached else ""
        self._view.show_status(f"Found {_plural(len(owners), 'account')}{suffix}")
        self._cascade(Level.ACCOUNT)

    def _apply_resources(self, result: FetchResult) -> None:
        if self._fail(Level.RESOURCE, result):
            return
        resources: list[Resource] = list(result.value or [])
        self._loaded(Level.RESOURCE, resources, result)
        vaults = sum(1 for r in resources if r.kind is ResourceKind.KEY_VAULT)
        apps = len(resources) - vaults
        message = f"Found {_plural(vaults, 'key vault')} + {_plural(apps, 'container app')}"
        if result.cached:
            message += " (cached)"
        if result.warning:
            message += f" ({result.warning})"
        self._view.show_status(message)
        self._cascade(Level.RESOURCE)

    def _apply_secrets(self, result: FetchResult) -> None:
        if self._fail(Level.SECRET, result):
            return
        self._all_secrets = sorted(result.value or [], key=lambda s: s.name.lower())
        state = self._loaded(Level.SECRET, self._filtered(self._all_secrets), result)
        suffix = " (cached)" if result.cached else ""
        resource = self.selected_resource
        where = f" in {resource.name}" if resource is not None else ""
        self._view.show_status(f"Found {_plural(len(self._all_secrets), 'secret')}{where}{suffix}")
        if state.items:
            self._cascade(Level.SECRET)

    def _apply_value(self, result: FetchResult) -> None:
        if self._fail(Level.VALUE, result):
            return
        self.levels[Level.VALUE].selected = 0
        self._loaded(Level.VALUE, [result.value], result)

    def _cascade(self, level: Level) -> None:
        """Select a row of *level* after it loaded: the restored one or the first."""
        state = self.levels[level]
        if not state.items:
            return
        index = self._restored_index(level, state)
        if index is None:
            index = first_selectable(state.items) if level is Level.SUBSCRIPTION else 0
        if index is not None:
            self._select_restoring(level, index)

    def _select_restoring(self, level: Level, index: int) -> None:
        previous, self._restoring = self._restoring, True
        try:
            self.select(level, index, force=True)
        finally:
            self._restoring = previous

    def _restored_index(self, level: Level, state: LevelState) -> int | None:
        """The saved row of *level*: by identity, else by index while in range."""
        saved = self._restore.pop(level, None)
        if saved is None:
            return None
        identity, index = saved
        for i, item in enumerate(state.items):
            if _identity(level, item) == identity:
                return i
        return index if 0 <= index < len(state.items) else None

    def _filtered(self, secrets: list[SecretMeta]) -> list[SecretMeta]:
        if not self._filter:
            return list(secrets)
        return [s for s in secrets if s.matches(self._filter)]

    def _load_group(self, subscription_ids: list[str]) -> FetchResult[list[Resource]]:
        """Fan out over a group's subscriptions and merge the listings.

        Runs on a worker thread.
        """
        events = self._bulk.run(
            subscription_ids,
            self._fetchers.load_resources,
            self._fetchers.are_resources_cached,
        )
        errors: dict[str, FetchError] = {e.current_id: e.error for e in events if e.error}
        merged: list[Resource] = []
        cached = not any(e.current_id for e in events)
        for sub_id in subscription_ids:
            if sub_id in errors:
                continue
            result = self._fetchers.load_resources(sub_id)
            if result.ok:
                merged.extend(result.value or [])
            else:
                errors[sub_id] = result.error
        if len(errors) == len(subscription_ids):
            return FetchResult.failure(next(iter(errors.values())))
        warning = None
        if errors:
            logger.warning("group load: %d of %d subscriptions failed", len(errors), len(subscription_ids))
            warning = f"{len(errors)} of {len(subscription_ids)} subscriptions failed"
        merged.sort(key=lambda r: r.name.lower())
        return FetchResult.success(merged, cached=cached, warning=warning)

    def _start_warmup(self, subscription_ids: list[str]) -> None:
        self.cancel_background(quiet=True)
        self._warmup_generation += 1
        generation = self._warmup_generation

        def on_progress(event: Progress) -> None:
            self._post(lambda: self._warmup_progress(generation, event))

        self._warmup = self._bulk.start(
            subscription_ids,
            self._fetchers.load_resources,
            self._fetchers.are_resources_cached,
            on_progress=on_progress,
        )

    def _warmup_progress(self, generation: int, event: Progress) -> None:
        if generation != self._warmup_generation:
            return
        self._view.show_progress(event)

    def _mutation_done(self, request: MutationRequest, future: Future) -> None:
        try:
            result = future.result()
        except Exception as exc:
            logger.exception("mutation of %s failed unexpectedly", request.name)
            result = MutationResult(request=request, success=False, error=str(exc))
        self._view.show_mutation(result)
        if not result.success:
            self._view.show_status(f"Failed: {result.error}")
            return
        self._view.show_status(f"{result.verb} {request.name} in {request.resource.name}")

        res_state = self.levels[Level.RESOURCE]
        resource = self.selected_resource
        if resource is None or resource.id != request.resource.id:
            return
        sec_state = self.levels[Level.SECRET]
        if request.kind is MutationKind.SET:
            self._restore[Level.SECRET] = (request.name, 0)
        elif sec_state.selected is not None:
            # Stay on the same row; deleting the last one moves up to the new last.
            remaining = len(sec_state.items) - 1
            self._restore[Level.SECRET] = (None, max(min(sec_state.selected, remaining - 1), 0))
        self._select_restoring(Level.RESOURCE, res_state.selected)
