"""
Import a league from the hosted store into the local database.

Usage:
    python -m app.importer
    python -m app.importer --replace
    python -m app.importer --url https://xyz.example.co --key <service key>

Copies teams, players, fixtures, match events and the elimination bracket.
Remote ids are strings; local rows get fresh integer ids and every reference
is remapped. Rows that point at something missing are skipped and reported.
"""
import argparse
import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.db import get_session, init_db
from app.hosted_store import HostedStoreClient, HostedStoreError
from app.live_match import MatchStatus, Stage
from app.models import EliminationMatch, Match, MatchEvent, Player, Team
from app.realtime import get_change_feed

logger = logging.getLogger("importer")

TABLES = ("teams", "players", "matches", "match_events", "elimination_matches")
STAGES = {s.value for s in Stage}
STATUSES = {s.value for s in MatchStatus}
EVENT_TYPES = {"goal", "red_card", "yellow_card"}


@dataclass
class ImportReport:
    imported: Dict[str, int] = field(default_factory=lambda: {t: 0 for t in TABLES})
    skipped: List[str] = field(default_factory=list)

    def skip(self, table: str, remote_id: Any, reason: str) -> None:
        self.skipped.append(f"{table}:{remote_id} ({reason})")


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value[:10]) if value else None


def _parse_time(value: Optional[str]) -> Optional[time]:
    return time.fromisoformat(value[:8]) if value else None


def _count(row: Dict[str, Any], key: str) -> int:
    return max(int(row.get(key) or 0), 0)


def _match_status(row: Dict[str, Any]) -> str:
    status = row.get("status")
    if status in STATUSES:
        return status
    return MatchStatus.FINISHED.value if row.get("played") else MatchStatus.SCHEDULED.value


def import_league(db: Session, client: HostedStoreClient, replace: bool = False) -> ImportReport:
    """
    Pull every table and write it locally in one transaction.

    With replace=True the local league is wiped first, inside the same
    transaction: a failed import leaves it untouched.
    """
    report = ImportReport()

    remote = {table: client.select(table) for table in TABLES}
    logger.info("Fetched " + ", ".join(f"{len(rows)} {t}" for t, rows in remote.items()))

    removed: Dict[str, int] = {}
    try:
        if replace:
            removed = crud.clear_league(db)

        team_ids: Dict[str, int] = {}
        for row in remote["teams"]:
            team = Team(
                name=row["name"],
                logo_url=row.get("logo_url") or "",
                group_name=row.get("group_name") or "A",
                wins=_count(row, "wins"),
                draws=_count(row, "draws"),
                losses=_count(row, "losses"),
                goals_for=_count(row, "goals_for"),
                goals_against=_count(row, "goals_against"),
            )
            db.add(team)
            db.flush()
            team_ids[str(row["id"])] = team.id
            report.imported["teams"] += 1

        player_ids: Dict[str, int] = {}
        for row in remote["players"]:
            team_id = team_ids.get(str(row.get("team_id")))
            if team_id is None:
                report.skip("players", row.get("id"), "unknown team")
                continue
            player = Player(
                name=row["name"],
                team_id=team_id,
                goals=_count(row, "goals"),
                assists=_count(row, "assists"),
            )
            db.add(player)
            db.flush()
            player_ids[str(row["id"])] = player.id
            report.imported["players"] += 1

        match_ids: Dict[str, int] = {}
        for row in remote["matches"]:
            home = team_ids.get(str(row.get("home_team") or row.get("home_team_id")))
            away = team_ids.get(str(row.get("away_team") or row.get("away_team_id")))
            if home is None or away is None or home == away:
                report.skip("matches", row.get("id"), "unknown or identical teams")
                continue
            if not row.get("date"):
                report.skip("matches", row.get("id"), "no date")
                continue
            status = _match_status(row)
            match = Match(
                date=_parse_date(row.get("date")),
                time=_parse_time(row.get("time")),
                home_team_id=home,
                away_team_id=away,
                status=status,
                played=status == MatchStatus.FINISHED.value,
                home_score=row.get("home_score"),
                away_score=row.get("away_score"),
                live_home_score=_count(row, "live_home_score"),
                live_away_score=_count(row, "live_away_score"),
                current_minute=_count(row, "current_minute"),
            )
            db.add(match)
            db.flush()
            match_ids[str(row["id"])] = match.id
            report.imported["matches"] += 1

        for row in remote["match_events"]:
            match_id = match_ids.get(str(row.get("match_id")))
            player_id = player_ids.get(str(row.get("player_id")))
            if match_id is None or player_id is None:
                report.skip("match_events", row.get("id"), "unknown match or player")
                continue
            if row.get("event_type") not in EVENT_TYPES:
                report.skip("match_events", row.get("id"), f"unknown event type {row.get('event_type')!r}")
                continue
            db.add(MatchEvent(
                match_id=match_id,
                player_id=player_id,
                event_type=row["event_type"],
                minute=_count(row, "minute"),
                assist_player_id=player_ids.get(str(row.get("assist_player_id"))),
            ))
            report.imported["match_events"] += 1

        for row in remote["elimination_matches"]:
            if row.get("stage") not in STAGES:
                report.skip("elimination_matches", row.get("id"), f"unknown stage {row.get('stage')!r}")
                continue
            status = row.get("status") or MatchStatus.SCHEDULED.value
            if status not in STATUSES:
                report.skip("elimination_matches", row.get("id"), f"unknown status {status!r}")
                continue
            db.add(EliminationMatch(
                stage=row["stage"],
                match_number=int(row.get("match_number") or 1),
                date=_parse_date(row.get("date")),
                time=_parse_time(row.get("time")),
                team1_id=team_ids.get(str(row.get("team1_id"))),
                team2_id=team_ids.get(str(row.get("team2_id"))),
                winner_id=team_ids.get(str(row.get("winner_id"))),
                status=status,
                team1_score=row.get("team1_score"),
                team2_score=row.get("team2_score"),
                live_team1_score=_count(row, "live_team1_score"),
                live_team2_score=_count(row, "live_team2_score"),
                current_minute=_count(row, "current_minute"),
            ))
            report.imported["elimination_matches"] += 1

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("Import failed, nothing was written", exc_info=True)
        raise

    feed = get_change_feed()
    if replace:
        for table in removed:
            feed.publish(table, "delete", None)
        logger.warning(f"League replaced, removed: {removed}")
    for table, count in report.imported.items():
        if count:
            feed.publish(table, "insert", None)

    for line in report.skipped:
        logger.warning(f"Skipped {line}")
    return report


def main():
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Import a league from the hosted store")
    parser.add_argument("--url", type=str, default=None, help="Hosted store URL (default: settings)")
    parser.add_argument("--key", type=str, default=None, help="Hosted store key (default: settings)")
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Delete the local league before importing",
    )
    args = parser.parse_args()

    print("=== League Import ===")
    try:
        client = HostedStoreClient(base_url=args.url, api_key=args.key)
    except HostedStoreError as e:
        print(f"Cannot connect: {e}")
        raise SystemExit(2)

    init_db()
    db = get_session()
    try:
        report = import_league(db, client, replace=args.replace)
    except HostedStoreError as e:
        print(f"Import failed: {e}")
        raise SystemExit(1)
    finally:
        db.close()

    print()
    print("=== Summary ===")
    for table, count in report.imported.items():
        print(f"{table}: {count}")
    if report.skipped:
        print(f"Skipped: {len(report.skipped)} rows (see log)")


if __name__ == "__main__":
    main()
