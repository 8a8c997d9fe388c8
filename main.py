"""Main entry point for the Fantasy Football Roster Advisor."""

import asyncio
import logging
from typing import List, Optional

import click

from roster_advisor import build_advisor
from roster_advisor.analysis.accuracy import accuracy_report
from roster_advisor.data.records import FANTASY_POSITIONS, League, User, new_id
from roster_advisor.errors import AdvisorError
from roster_advisor.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

JOB_NAMES = ['player_sync', 'projection_sync', 'stats_sync', 'transaction_sync']


def parse_weeks(value: Optional[str]) -> Optional[List[int]]:
    """Parse '1-5' or '1,3,5' into a list of weeks."""
    if not value:
        return None
    if '-' in value:
        start, end = (int(part) for part in value.split('-', 1))
        return list(range(start, end + 1))
    return [int(part) for part in value.split(',')]


async def _week_and_season(advisor, week: Optional[int], season: Optional[int]):
    if week is not None and season is not None:
        return week, season
    current_week, current_season = await advisor.tasks.resolve_week()
    return (current_week if week is None else week), (current_season if season is None else season)


def _run(coro_fn):
    """Build the advisor, run one coroutine against it, and clean up."""
    advisor = build_advisor()

    async def runner():
        try:
            return await coro_fn(advisor)
        finally:
            await advisor.store.flush()

    try:
        return asyncio.run(runner())
    except AdvisorError as e:
        raise click.ClickException(str(e))
    finally:
        advisor.close()


@click.group()
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set logging level')
@click.option('--log-file', type=click.Path(), help='Log file path')
def cli(log_level, log_file):
    """Fantasy Football Roster Advisor CLI."""
    setup_logging(level=log_level, log_file=log_file)


@cli.command('sync-players')
def sync_players():
    """Sync every NFL player from Sleeper."""
    result = _run(lambda advisor: advisor.tasks.sync_players())
    click.echo(f"Players: created={result.created}, updated={result.updated}, "
               f"skipped={result.skipped}, errors={len(result.errors)}")


@cli.command('connect-league')
@click.option('--user-id', required=True, help='Local user id')
@click.option('--email', required=True, help='User email for notifications')
@click.option('--league-id', 'platform_league_id', required=True, help='Sleeper league id')
@click.option('--team-id', required=True, help="Sleeper user id that owns the user's roster")
def connect_league(user_id, email, platform_league_id, team_id):
    """Connect a Sleeper league and load the user's roster."""
    async def connect(advisor):
        if await advisor.store.get_user(user_id) is None:
            await advisor.store.upsert_user(User(id=user_id, email=email))
        league = League(id=new_id(), user_id=user_id, platform_league_id=platform_league_id,
                        platform_team_id=team_id)
        await advisor.store.upsert_league(league)
        synced = await advisor.player_sync.sync_league(league.id)
        await advisor.learner.initialize_profiles(league.id)
        return synced or league

    league = _run(connect)
    click.echo(f"Connected league {league.league_name or platform_league_id} as {league.id}")


@cli.command('sync-stats')
@click.option('--week', '-w', type=int, help='Week to sync (defaults to the previous week)')
@click.option('--season', '-y', type=int, help='Season (defaults to current)')
def sync_stats(week, season):
    """Sync actual weekly stats from Sleeper."""
    async def sync(advisor):
        if week is None and season is None:
            return await advisor.tasks.sync_weekly_stats()
        target_week, target_season = await _week_and_season(advisor, week, season)
        return await advisor.stats_service.sync_week_stats(target_season, target_week)

    result = _run(sync)
    click.echo(f"Stats: created={result.created}, updated={result.updated}, "
               f"skipped={result.skipped}, errors={len(result.errors)}")


@cli.command()
@click.option('--week', '-w', type=int, help='Target week (0 for rest of season)')
@click.option('--season', '-y', type=int, help='Target season (defaults to current)')
@click.option('--positions', '-p', multiple=True,
              type=click.Choice(FANTASY_POSITIONS),
              help='Positions to include (default: all)')
@click.option('--generate/--no-generate', default=True,
              help='Generate projections before listing them')
@click.option('--basic', is_flag=True, help='Use the basic algorithm instead of history')
@click.option('--output', '-o', type=click.Path(),
              help='Output file path (CSV format)')
def projections(week, season, positions, generate, basic, output):
    """Generate and list weekly fantasy point projections."""
    async def project(advisor):
        target_week, target_season = await _week_and_season(advisor, week, season)
        if generate:
            await advisor.projection_engine.sync_week_projections(
                target_week, target_season, list(positions) or None, basic=basic)
        frame = await advisor.projection_engine.weekly_projections_frame(
            target_week, target_season, list(positions) or None)
        return target_week, frame

    target_week, frame = _run(project)
    if frame.empty:
        click.echo("No projections generated.", err=True)
        return

    click.echo(f"\nTop 20 Projections (Week {target_week}):")
    click.echo("=" * 60)
    for _, row in frame.head(20).iterrows():
        click.echo(f"{row['player_name']:24} {row['position']:3} {row['team']:4} "
                   f"{row['projected_points']:6.1f} pts  conf {row['confidence']:.2f}  [{row['status']}]")

    if output:
        frame.to_csv(output, index=False)
        click.echo(f"\nProjections saved to {output}")

    click.echo(f"\nGenerated {len(frame)} total projections.")


@cli.command()
@click.option('--season', '-y', type=int, required=True, help='Season to backfill')
@click.option('--weeks', help="Weeks as '1-5' or '1,3,5' (default: 1-18)")
@click.option('--stats-only', is_flag=True, help='Only load actual stats')
@click.option('--projections-only', is_flag=True, help='Only rebuild projections')
def backfill(season, weeks, stats_only, projections_only):
    """Backfill a season's stats and projections week by week."""
    if stats_only and projections_only:
        raise click.UsageError("--stats-only and --projections-only are mutually exclusive")

    result = _run(lambda advisor: advisor.tasks.backfill_season(
        season, parse_weeks(weeks), stats_only=stats_only, projections_only=projections_only))
    click.echo(f"Backfill {season}: created={result.created}, updated={result.updated}, "
               f"errors={len(result.errors)}")


@cli.command()
@click.option('--league-id', required=True, help='Local league id')
@click.option('--week', '-w', type=int, help='Current week')
@click.option('--season', '-y', type=int, help='Season')
@click.option('--max', 'max_packages', type=int, help='Maximum recommendations')
def trades(league_id, week, season, max_packages):
    """Generate trade recommendations for a league."""
    async def generate(advisor):
        target_week, target_season = await _week_and_season(advisor, week, season)
        await advisor.player_sync.sync_league(league_id)
        return await advisor.generate_trade_recommendations(league_id, target_season, max(1, target_week),
                                                            max_packages)

    recommendations = _run(generate)
    if not recommendations:
        click.echo("No trade recommendations.")
        return

    for rec in recommendations:
        give = ', '.join(p.player_name for p in rec.my_players)
        get = ', '.join(p.player_name for p in rec.target_players)
        click.echo(f"[{rec.trade_type}] give {give} -> get {get} from {rec.target_team_name or rec.target_team_id}")
        click.echo(f"    fairness {rec.fairness_score:.2f}, acceptance {rec.acceptance_probability:.2f}, "
                   f"gain {rec.my_value_gain:+.1f}")
        click.echo(f"    {rec.reasoning}")


@cli.command()
@click.option('--league-id', required=True, help='Local league id')
@click.option('--week', '-w', type=int, help='Current week')
@click.option('--season', '-y', type=int, help='Season')
@click.option('--priority', is_flag=True, help='Rank by waiver priority instead of FAAB')
def waivers(league_id, week, season, priority):
    """Generate waiver recommendations for a league."""
    async def generate(advisor):
        target_week, target_season = await _week_and_season(advisor, week, season)
        await advisor.player_sync.sync_league(league_id)
        return await advisor.generate_waiver_recommendations(
            league_id, target_season, max(1, target_week), use_faab=not priority)

    recommendations = _run(generate)
    if not recommendations:
        click.echo("No waiver recommendations.")
        return

    for rec in recommendations:
        bid = f"${rec.recommended_bid}" if rec.recommended_bid is not None else f"priority {rec.priority_rank}"
        click.echo(f"{rec.player_name:24} {rec.position:3} opp {rec.opportunity_score:.2f} "
                   f"{bid:>12}  [{rec.urgency.value}]")
        click.echo(f"    {rec.reasoning}")


@cli.command()
@click.option('--season', '-y', type=int, required=True, help='Season to evaluate')
@click.option('--weeks', help="Weeks as '1-5' or '1,3,5' (default: 1-18)")
@click.option('--position', type=click.Choice(FANTASY_POSITIONS), help='Single position')
@click.option('--output', '-o', type=click.Path(), help='CSV file for the per-position table')
def accuracy(season, weeks, position, output):
    """Report projection accuracy against actual points."""
    report = _run(lambda advisor: accuracy_report(advisor.store, season, parse_weeks(weeks), position))

    overall = report['overall']
    click.echo(f"\nProjection accuracy, season {season}")
    click.echo("=" * 60)
    click.echo(f"Projections: {int(overall['projections'])}  MAE {overall['mae']:.2f}  "
               f"RMSE {overall['rmse']:.2f}  bias {overall['bias']:+.2f}")
    click.echo(f"Within 5: {overall['within_5']:.1f}%  Within 10: {overall['within_10']:.1f}%")

    by_position = report['by_position']
    if not by_position.empty:
        click.echo("\n" + by_position.to_string(index=False))
    if output:
        by_position.to_csv(output, index=False)
        click.echo(f"\nReport saved to {output}")


@cli.command()
def monitor():
    """Run the injury monitor until interrupted."""
    async def run(advisor):
        await advisor.monitor.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await advisor.monitor.stop()

    try:
        _run(run)
    except KeyboardInterrupt:
        click.echo("Injury monitor stopped.")


@cli.command()
@click.option('--run-job', type=click.Choice(JOB_NAMES), help='Run one job now and exit')
def schedule(run_job):
    """Run the sync job scheduler, or trigger a single job."""
    if run_job:
        result = _run(lambda advisor: advisor.scheduler.run_job(run_job))
        click.echo(f"{result.job_name}: {result.status.value}, {result.items_processed} items, "
                   f"{len(result.errors)} errors")
        return

    async def run(advisor):
        await advisor.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await advisor.stop()

    try:
        _run(run)
    except KeyboardInterrupt:
        click.echo("Scheduler stopped.")


if __name__ == '__main__':
    cli()
