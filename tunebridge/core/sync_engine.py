"""
Sync Engine

Reconciles one source playlist into one target playlist, idempotently.

Run, per leg:
--------------
1. LOAD_CACHE            per (direction, source playlist) document
2. FETCH_BOTH_CATALOGS   the two reads run concurrently
3. SELECT_CANDIDATES     most recent `window` source items only, admitted if
                         first run and unmapped, added after the last sync,
                         never seen, or mapped to a target item that is gone
4. BUILD_PLAN            per candidate: already mapped -> nothing,
                         soft duplicate -> map-only, else search + match ->
                         add / map-only / skip(reason). Strictly sequential:
                         a planned add joins the destination snapshot so later
                         candidates cannot plan it twice.
5. APPLY                 adds oldest-first (the plan is newest-first), so
                         append-only inserts keep chronological order; one
                         failed insert never stops the rest
6. PERSIST_CACHE         seenIds gets every current source ID except failed
                         adds and failed searches, lastSync is stamped,
                         document replaced atomically

Steps 5 and 6 are skipped on a dry run. Overlapping runs on the same pair
are not guarded against here.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional, Protocol

from tunebridge.core.cache import SyncCache, SyncCacheStore
from tunebridge.core.dedupe import find_soft_duplicate
from tunebridge.core.matching import find_source_match, find_target_match
from tunebridge.core.models import (
    SP2YT,
    YT2SP,
    CanonicalItem,
    CatalogSearchError,
    MatchReason,
    MatchResult,
    PlanAction,
    PlanEntry,
    SyncOptions,
    SyncResult,
)

logger = logging.getLogger(__name__)

MODE_BOTH = "both"
MODES = (SP2YT, YT2SP, MODE_BOTH)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class CatalogClientProtocol(Protocol):
    def fetch_canonical_items(self, playlist_id: str) -> list[CanonicalItem] | None: ...
    def search(self, query: str, limit: int) -> list[CanonicalItem]: ...
    def insert(self, playlist_id: str, item_id: str) -> bool: ...


def _describe(item: CanonicalItem) -> str:
    if item.primary_artist:
        return f"{item.primary_artist} - {item.title}"
    return item.title


def _recency_key(item: CanonicalItem) -> datetime:
    return item.added_at or _EPOCH


def select_candidates(source_items: list[CanonicalItem], cache: SyncCache,
                      target_ids: set[str], window: int) -> list[CanonicalItem]:
    """Source items to evaluate this run, newest first."""
    recent = sorted(source_items, key=_recency_key, reverse=True)[:max(window, 0)]

    candidates = []
    for item in recent:
        mapped = cache.mapping.get(item.item_id)
        valid = bool(mapped) and mapped in target_ids
        added_recently = (
            item.added_at is not None
            and (cache.last_sync is None or item.added_at > cache.last_sync)
        )
        unseen = item.item_id not in cache.seen_ids
        mapped_but_missing = bool(mapped) and not valid

        if (cache.first_run and not valid) or added_recently or unseen or mapped_but_missing:
            candidates.append(item)
    return candidates


class SyncEngine:
    """Runs one direction (leg) of a playlist pair."""

    def __init__(self, source: CatalogClientProtocol, target: CatalogClientProtocol,
                 store: SyncCacheStore, direction: str,
                 options: Optional[SyncOptions] = None, label: str = ""):
        if direction not in (SP2YT, YT2SP):
            raise ValueError(f"Unknown direction: {direction}")
        self._source = source
        self._target = target
        self._store = store
        self._direction = direction
        self._options = options or SyncOptions()
        self._prefix = f"[{label}] " if label else ""

    def _log(self, level: int, msg: str) -> None:
        logger.log(level, f"{self._prefix}{msg}")

    def _fetch_both(self, source_playlist_id: str, target_playlist_id: str):
        with ThreadPoolExecutor(max_workers=2) as pool:
            source_future = pool.submit(self._source.fetch_canonical_items, source_playlist_id)
            target_future = pool.submit(self._target.fetch_canonical_items, target_playlist_id)
            return source_future.result(), target_future.result()

    def _match(self, item: CanonicalItem) -> MatchResult:
        slack = self._options.duration_slack_sec
        try:
            if self._direction == SP2YT:
                result = find_target_match(item, self._target, slack)
            else:
                result = find_source_match(item, self._target, slack)
        except CatalogSearchError as e:
            self._log(logging.WARNING, f"  ! Search failed for '{_describe(item)}': {e}")
            return MatchResult.failure(MatchReason.SEARCH_FAILED)

        level = logging.INFO if self._options.verbose else logging.DEBUG
        if result.matched:
            self._log(level, f"  match '{_describe(item)}' -> {result.best.item_id} "
                             f"'{result.best.title}' score={result.score} "
                             f"inspected={result.inspected_count} escalated={result.escalated}"
                             + (" exact-title" if result.exact_title else ""))
        else:
            self._log(level, f"  no match '{_describe(item)}': {result.reason.value} "
                             f"inspected={result.inspected_count} escalated={result.escalated}")
        return result

    def build_plan(self, candidates: list[CanonicalItem], cache: SyncCache,
                   target_items: list[CanonicalItem]) -> tuple[list[PlanEntry], int]:
        """Plan entries (newest first) and the count of already-mapped candidates."""
        destination = list(target_items)
        present = {t.item_id for t in target_items}
        plan: list[PlanEntry] = []
        already_mapped = 0

        for item in candidates:
            mapped = cache.mapping.get(item.item_id)
            if mapped and mapped in present:
                already_mapped += 1
                continue

            dup = find_soft_duplicate(item, destination, self._direction)
            if dup is not None:
                plan.append(PlanEntry(item, PlanAction.MAP_ONLY, dup.item_id, dup.title,
                                      reason="soft_duplicate"))
                continue

            result = self._match(item)
            if not result.matched:
                plan.append(PlanEntry(item, PlanAction.SKIP, reason=result.reason.value))
                continue

            best = result.best
            if best.item_id in present:
                plan.append(PlanEntry(item, PlanAction.MAP_ONLY, best.item_id, best.title,
                                      reason="already_present", score=result.score))
            else:
                plan.append(PlanEntry(item, PlanAction.ADD, best.item_id, best.title,
                                      score=result.score))
                present.add(best.item_id)
                destination.append(best)

        return plan, already_mapped

    def _log_plan(self, plan: list[PlanEntry]) -> None:
        for p in plan:
            if p.action is PlanAction.ADD:
                self._log(logging.INFO, f"  + ADD  {_describe(p.source)}  ->  {p.target_id}")
            elif p.action is PlanAction.MAP_ONLY:
                self._log(logging.INFO, f"  = MAP  {_describe(p.source)}  <->  {p.target_id} ({p.reason})")
            else:
                self._log(logging.INFO, f"  ~ SKIP {_describe(p.source)}  ({p.reason})")
        if not plan:
            self._log(logging.INFO, "  (Nothing to do)")

    def apply_plan(self, plan: list[PlanEntry], cache: SyncCache,
                   target_playlist_id: str) -> tuple[int, int, list[str], set[str]]:
        """
        Execute adds oldest-first, then record map-only entries.
        Returns (added, mapped, errors, source IDs whose insert failed).
        """
        added = mapped = 0
        errors = []
        failed: set[str] = set()

        adds = [p for p in plan if p.action is PlanAction.ADD]
        for p in reversed(adds):
            label = _describe(p.source)
            try:
                ok = self._target.insert(target_playlist_id, p.target_id)
            except Exception as e:
                errors.append(f"Error adding {label}: {e}")
                failed.add(p.source.item_id)
                self._log(logging.WARNING, f"  ! Failed for {label}: {e}")
                continue
            if ok:
                cache.mapping[p.source.item_id] = p.target_id
                added += 1
                self._log(logging.INFO, f"  ✓ Added {label} -> {p.target_id}")
            else:
                errors.append(f"Failed to add: {label}")
                failed.add(p.source.item_id)
                self._log(logging.WARNING, f"  ! Failed for {label}")

        for p in plan:
            if p.action is PlanAction.MAP_ONLY:
                cache.mapping[p.source.item_id] = p.target_id
                mapped += 1

        return added, mapped, errors, failed

    def run(self, source_playlist_id: str, target_playlist_id: str,
            window: Optional[int] = None) -> SyncResult:
        """Perform one leg. Raises CachePersistError if the cache cannot be saved."""
        start = time.time()
        window = self._options.window if window is None else window
        dry_run = self._options.dry_run

        self._log(logging.INFO, "=" * 50)
        self._log(logging.INFO, f"Syncing {self._direction}: {source_playlist_id} -> "
                                f"{target_playlist_id}" + (" [DRY-RUN]" if dry_run else ""))

        cache = self._store.load(self._direction, source_playlist_id)

        source_items, target_items = self._fetch_both(source_playlist_id, target_playlist_id)
        if source_items is None:
            return SyncResult.failure("Failed to fetch source playlist", self._direction)
        if target_items is None:
            return SyncResult.failure("Failed to fetch target playlist", self._direction)

        target_ids = {t.item_id for t in target_items}
        candidates = select_candidates(source_items, cache, target_ids, window)

        self._log(logging.INFO, f"• Source items total: {len(source_items)}")
        self._log(logging.INFO, f"• Target items total: {len(target_items)}")
        self._log(logging.INFO, f"• Candidates to process: {len(candidates)} (window {window})")

        plan, already_mapped = self.build_plan(candidates, cache, target_items)
        self._log_plan(plan)
        skipped = sum(1 for p in plan if p.action is PlanAction.SKIP)

        if dry_run:
            self._log(logging.INFO, "• DRY-RUN: no changes applied.")
            return SyncResult(
                success=True, direction=self._direction, items_added=0, items_mapped=0,
                items_skipped=skipped, errors=[], source_count=len(source_items),
                target_count=len(target_items), duration=time.time() - start,
                already_mapped=already_mapped, dry_run=True, plan=plan
            )

        added, mapped, errors, failed = self.apply_plan(plan, cache, target_playlist_id)

        # Failed adds and failed searches stay unseen so the next run retries them.
        failed |= {p.source.item_id for p in plan if p.reason == MatchReason.SEARCH_FAILED.value}
        cache.seen_ids |= {s.item_id for s in source_items if s.item_id not in failed}
        cache.last_sync = datetime.now(timezone.utc)
        self._store.save(self._direction, source_playlist_id, cache)
        self._log(logging.INFO, "• Cache updated.")

        duration = time.time() - start
        self._log(logging.INFO, f"Completed in {duration:.1f}s: +{added} ={mapped} ~{skipped}"
                                + (f" ({len(errors)} errors)" if errors else ""))

        return SyncResult(
            success=len(errors) == 0,
            direction=self._direction,
            items_added=added,
            items_mapped=mapped,
            items_skipped=skipped,
            errors=errors,
            source_count=len(source_items),
            target_count=len(target_items) + added,
            duration=duration,
            already_mapped=already_mapped,
            plan=plan
        )


def run_pair(spotify: CatalogClientProtocol, youtube: CatalogClientProtocol,
             store: SyncCacheStore, spotify_playlist_id: str, youtube_playlist_id: str,
             mode: str = SP2YT, options: Optional[SyncOptions] = None,
             window_yt: Optional[int] = None, label: str = "") -> list[SyncResult]:
    """
    Run the legs selected by mode for one configured pair.

    In "both" mode the yt2sp window grows by the number of items the sp2yt
    leg actually added, since those appends push older entries out of the
    naive recency window.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode}")
    options = options or SyncOptions()
    results = []
    bump = 0

    if mode in (SP2YT, MODE_BOTH):
        engine = SyncEngine(spotify, youtube, store, SP2YT, options, label)
        result = engine.run(spotify_playlist_id, youtube_playlist_id, options.window)
        results.append(result)
        bump = result.items_added

    if mode in (YT2SP, MODE_BOTH):
        base = options.window if window_yt is None else window_yt
        engine = SyncEngine(youtube, spotify, store, YT2SP, options, label)
        results.append(engine.run(youtube_playlist_id, spotify_playlist_id, base + bump))

    return results
