"""Data integrity audit and repair for standings and roster data.

Checks, over team_records:
- duplicates: more than one record for a (team, conference, season) key
- orphans: records whose team, conference or season no longer exists
- invalid relationships: records whose team has no active junction to the
  record's conference
- missing junctions: expected (team, conference) pairs with no active
  junction row

and, over team_rosters, more than one current entry for a
(team, player, season).

audit() only reads. cleanup() repairs in a fixed order (orphans, then
duplicates, then extra current roster entries, then junctions) and records
each failed write instead of stopping.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Set, Tuple

from league_sync.core import metrics
from league_sync.exceptions import StoreError
from league_sync.repositories.store import StoreGateway

logger = logging.getLogger(__name__)

RecordKey = Tuple[int, int, int]
Pair = Tuple[int, int]


@dataclass
class IntegrityReport:
    total_team_records: int = 0
    duplicate_records: int = 0
    orphaned_records: int = 0
    invalid_relationships: int = 0
    missing_junction_records: int = 0
    duplicate_roster_entries: int = 0
    seasons_affected: List[int] = field(default_factory=list)
    conferences_affected: List[int] = field(default_factory=list)
    cleanup_recommendations: List[str] = field(default_factory=list)
    audited_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def has_issues(self) -> bool:
        return any((
            self.duplicate_records,
            self.orphaned_records,
            self.invalid_relationships,
            self.missing_junction_records,
            self.duplicate_roster_entries,
        ))


@dataclass
class CleanupResult:
    records_deleted: int = 0
    records_updated: int = 0
    records_created: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class _Dataset:
    teams: Dict[int, Dict[str, Any]]
    conferences: Dict[int, Dict[str, Any]]
    seasons: Dict[int, Dict[str, Any]]
    junctions: List[Dict[str, Any]]
    records: List[Dict[str, Any]]
    current_entries: List[Dict[str, Any]]

    @property
    def active_pairs(self) -> Set[Pair]:
        return {(j['team_id'], j['conference_id']) for j in self.junctions if j['is_active']}


def _record_key(record: Dict[str, Any]) -> RecordKey:
    return record['team_id'], record['conference_id'], record['season_id']


def _newest(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Most recently updated row, highest id on ties."""
    return max(rows, key=lambda r: (r['last_updated'], r['id']))


class DataIntegrityService:
    """
    Args:
        store: Store gateway
        expect_full_membership: Expect a junction for every team in every
            conference; by default only pairs referenced by team records
            are expected
    """

    def __init__(self, store: StoreGateway, expect_full_membership: bool = False):
        self.store = store
        self.expect_full_membership = expect_full_membership

    async def _load(self) -> _Dataset:
        teams = await self.store.list_all('teams', order_by='id')
        conferences = await self.store.list_all('conferences', order_by='id')
        seasons = await self.store.list_all('seasons', order_by='id')
        return _Dataset(
            teams={t['id']: t for t in teams},
            conferences={c['id']: c for c in conferences},
            seasons={s['id']: s for s in seasons},
            junctions=await self.store.list_all('team_conference_junction', order_by='id'),
            records=await self.store.list_all('team_records', order_by='id'),
            current_entries=await self.store.list_all('team_rosters', [('is_current', 'eq', True)], order_by='id'),
        )

    # ========================================================================
    # Analysis (pure)
    # ========================================================================

    @staticmethod
    def _orphans(data: _Dataset) -> List[Dict[str, Any]]:
        return [
            r for r in data.records
            if r['team_id'] not in data.teams
            or r['conference_id'] not in data.conferences
            or r['season_id'] not in data.seasons
        ]

    @staticmethod
    def _duplicate_groups(records: List[Dict[str, Any]]) -> Dict[RecordKey, List[Dict[str, Any]]]:
        groups: Dict[RecordKey, List[Dict[str, Any]]] = defaultdict(list)
        for record in records:
            groups[_record_key(record)].append(record)
        return {key: rows for key, rows in groups.items() if len(rows) > 1}

    @staticmethod
    def _duplicate_roster_groups(entries: List[Dict[str, Any]]) -> List[List[Dict[str, Any]]]:
        groups: Dict[Tuple[int, int, int], List[Dict[str, Any]]] = defaultdict(list)
        for entry in entries:
            groups[(entry['team_id'], entry['player_id'], entry['season_id'])].append(entry)
        return [rows for rows in groups.values() if len(rows) > 1]

    def _expected_pairs(self, data: _Dataset, records: List[Dict[str, Any]]) -> Set[Pair]:
        if self.expect_full_membership:
            return {(t, c) for t in data.teams for c in data.conferences}
        return {(r['team_id'], r['conference_id']) for r in records}

    # ========================================================================
    # Audit
    # ========================================================================

    async def audit(self) -> IntegrityReport:
        """
        Scan the dataset and report problems without changing anything.

        Raises:
            StoreError: The dataset could not be read
        """
        data = await self._load()
        report = IntegrityReport(total_team_records=len(data.records))

        orphans = self._orphans(data)
        orphan_ids = {r['id'] for r in orphans}
        valid = [r for r in data.records if r['id'] not in orphan_ids]
        duplicates = self._duplicate_groups(valid)
        active_pairs = data.active_pairs
        invalid = [r for r in valid if (r['team_id'], r['conference_id']) not in active_pairs]
        missing = self._expected_pairs(data, valid) - active_pairs
        roster_groups = self._duplicate_roster_groups(data.current_entries)

        report.orphaned_records = len(orphans)
        report.duplicate_records = sum(len(rows) - 1 for rows in duplicates.values())
        report.invalid_relationships = len(invalid)
        report.missing_junction_records = len(missing)
        report.duplicate_roster_entries = sum(len(rows) - 1 for rows in roster_groups)

        affected = orphans + invalid + [r for rows in duplicates.values() for r in rows]
        report.seasons_affected = sorted({r['season_id'] for r in affected})
        report.conferences_affected = sorted(
            {r['conference_id'] for r in affected} | {conference for _, conference in missing}
        )

        recs = report.cleanup_recommendations
        if report.duplicate_records:
            recs.append(f"Remove {report.duplicate_records} duplicate team records")
        if report.orphaned_records:
            recs.append(f"Remove {report.orphaned_records} orphaned records with invalid references")
        if report.invalid_relationships:
            recs.append(f"Fix {report.invalid_relationships} records with invalid team-conference relationships")
        if report.missing_junction_records:
            recs.append(f"Create {report.missing_junction_records} missing team-conference junction records")
        if report.duplicate_roster_entries:
            recs.append(f"Supersede {report.duplicate_roster_entries} extra current roster entries")

        expected_per_season: Dict[int, int] = defaultdict(int)
        for junction in data.junctions:
            conference = data.conferences.get(junction['conference_id'])
            if junction['is_active'] and conference and conference['season_id'] in data.seasons:
                expected_per_season[conference['season_id']] += 1
        found_per_season: Dict[int, int] = defaultdict(int)
        for record in valid:
            found_per_season[record['season_id']] += 1
        for season_id in sorted(found_per_season):
            expected = expected_per_season.get(season_id, 0)
            if found_per_season[season_id] != expected:
                recs.append(
                    f"Season {season_id}: Expected {expected} records, found {found_per_season[season_id]}"
                )

        metrics.update_integrity_metrics({
            'duplicate_records': report.duplicate_records,
            'orphaned_records': report.orphaned_records,
            'invalid_relationships': report.invalid_relationships,
            'missing_junction_records': report.missing_junction_records,
            'duplicate_roster_entries': report.duplicate_roster_entries,
        })
        logger.info(
            f"Integrity audit: {report.total_team_records} records, {report.duplicate_records} duplicates, "
            f"{report.orphaned_records} orphans, {report.invalid_relationships} invalid, "
            f"{report.missing_junction_records} missing junctions"
        )
        return report

    # ========================================================================
    # Repair
    # ========================================================================

    async def cleanup(self) -> CleanupResult:
        """
        Repair the dataset. Never raises; failures land in result.errors.

        Order:
        1. delete orphaned records
        2. delete duplicates, keeping the newest of each key
        3. supersede extra current roster entries, keeping the newest
        4. create (or reactivate) missing junctions
        """
        result = CleanupResult()
        try:
            data = await self._load()
        except StoreError as e:
            result.errors.append(f"Failed to load data for cleanup: {e}")
            return result

        removed: Set[int] = set()
        orphans = self._orphans(data)
        orphan_ids = {r['id'] for r in orphans}

        for record in orphans:
            try:
                await self.store.delete('team_records', record['id'])
                removed.add(record['id'])
                result.records_deleted += 1
            except StoreError as e:
                result.errors.append(f"Failed to delete orphaned record {record['id']}: {e}")

        # Orphans are excluded even when their delete failed
        valid = [r for r in data.records if r['id'] not in orphan_ids]
        for key, rows in self._duplicate_groups(valid).items():
            keep = _newest(rows)
            for record in rows:
                if record is keep:
                    continue
                try:
                    await self.store.delete('team_records', record['id'])
                    removed.add(record['id'])
                    result.records_deleted += 1
                except StoreError as e:
                    result.errors.append(f"Failed to delete duplicate record {record['id']} for {key}: {e}")

        now = datetime.utcnow()
        for rows in self._duplicate_roster_groups(data.current_entries):
            keep = _newest(rows)
            for entry in rows:
                if entry is keep:
                    continue
                try:
                    await self.store.update('team_rosters', entry['id'], {
                        'is_current': False,
                        'removed_date': now,
                        'last_updated': now,
                    })
                    result.records_updated += 1
                except StoreError as e:
                    result.errors.append(f"Failed to supersede roster entry {entry['id']}: {e}")

        survivors = [r for r in data.records if r['id'] not in removed and r['id'] not in orphan_ids]
        inactive = {(j['team_id'], j['conference_id']): j for j in data.junctions if not j['is_active']}
        for team_id, conference_id in sorted(self._expected_pairs(data, survivors) - data.active_pairs):
            existing = inactive.get((team_id, conference_id))
            try:
                if existing:
                    await self.store.update('team_conference_junction', existing['id'], {'is_active': True})
                    result.records_updated += 1
                else:
                    await self.store.create('team_conference_junction', {
                        'team_id': team_id,
                        'conference_id': conference_id,
                        'roster_id': None,
                        'is_active': True,
                        'joined_date': now,
                    })
                    result.records_created += 1
            except StoreError as e:
                result.errors.append(
                    f"Failed to create junction for team {team_id}, conference {conference_id}: {e}"
                )

        logger.info(
            f"Integrity cleanup: {result.records_deleted} deleted, {result.records_updated} updated, "
            f"{result.records_created} created, {len(result.errors)} errors"
        )
        return result

    async def validate_season_conference_relationships(self) -> CleanupResult:
        """Point conferences with a missing season at the current season."""
        result = CleanupResult()
        try:
            conferences = await self.store.list_all('conferences', order_by='id')
            seasons = await self.store.list_all('seasons', order_by='id')
        except StoreError as e:
            result.errors.append(f"Season-conference validation failed: {e}")
            return result

        season_ids = {s['id'] for s in seasons}
        fallback = next((s for s in seasons if s['is_current_season']), seasons[0] if seasons else None)

        for conference in conferences:
            if conference['season_id'] in season_ids:
                continue
            if fallback is None:
                result.errors.append(f"Conference {conference['id']} has no valid season and no season exists")
                continue
            try:
                await self.store.update('conferences', conference['id'], {'season_id': fallback['id']})
                result.records_updated += 1
            except StoreError as e:
                result.errors.append(f"Failed to update conference {conference['id']} season relationship: {e}")

        return result

    async def create_missing_team_records(self) -> CleanupResult:
        """Create zeroed standings rows for every active junction in its conference's season."""
        result = CleanupResult()
        try:
            data = await self._load()
        except StoreError as e:
            result.errors.append(f"Failed to create missing team records: {e}")
            return result

        existing = {_record_key(r) for r in data.records}
        now = datetime.utcnow()
        for junction in data.junctions:
            if not junction['is_active']:
                continue
            conference = data.conferences.get(junction['conference_id'])
            if conference is None or conference['season_id'] not in data.seasons:
                continue
            key = (junction['team_id'], junction['conference_id'], conference['season_id'])
            if key in existing:
                continue
            try:
                await self.store.create('team_records', {
                    'team_id': key[0],
                    'conference_id': key[1],
                    'season_id': key[2],
                    'last_updated': now,
                })
                existing.add(key)
                result.records_created += 1
            except StoreError as e:
                result.errors.append(
                    f"Failed to create team record for team {key[0]}, conference {key[1]}, season {key[2]}: {e}"
                )

        return result
