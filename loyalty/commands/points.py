"""
CLI Commands for loyalty points.

Points expiration (run daily at midnight):
0 0 * * * cd /app && flask loyalty expire-points
"""
from datetime import datetime

import click
from flask.cli import with_appcontext

from ..services.expiration import ExpirationSweeper
from ..services.points_service import PointsService
from ..utils.exceptions import LoyaltyError


@click.group('loyalty')
def loyalty_cli():
    """Loyalty points commands."""
    pass


@loyalty_cli.command('expire-points')
@click.option('--program-id', type=int, help='Specific program ID (or all if not specified)')
@click.option('--now', 'now_str', help='Reference time in ISO format (default: current UTC time)')
@with_appcontext
def expire_points(program_id, now_str):
    """
    Expire balances past their expiry date.

    Run this daily.
    """
    now = None
    if now_str:
        try:
            now = datetime.fromisoformat(now_str)
        except ValueError:
            raise click.BadParameter(f'Invalid ISO datetime: {now_str}', param_hint='--now')

    result = ExpirationSweeper(program_id=program_id).process_expirations(now)

    click.echo(f"Accounts affected: {result['accounts_affected']}")
    click.echo(f"Total points expired: {result['total_points_expired']}")

    if result['errors']:
        click.echo(f"Errors: {len(result['errors'])}")
        for error in result['errors'][:5]:
            click.echo(f"  - Account {error['account_id']}: {error['error']}")


@loyalty_cli.command('verify')
@click.option('--program-id', type=int, required=True, help='Program ID')
@click.option('--customer-id', type=int, required=True, help='Customer ID')
@with_appcontext
def verify_ledger(program_id, customer_id):
    """Check an account's balance against its ledger."""
    try:
        result = PointsService(program_id).verify_ledger(customer_id)
    except LoyaltyError as e:
        raise click.ClickException(e.message)

    click.echo(f"Current points: {result['current_points']}")
    click.echo(f"Ledger sum:     {result['ledger_sum']}")
    click.echo(f"Totals balance: {result['totals_balance']}")

    if not result['consistent']:
        raise click.ClickException(f"Account {result['account_id']} is inconsistent with its ledger")

    click.echo('OK')


@loyalty_cli.command('summary')
@click.option('--program-id', type=int, required=True, help='Program ID')
@click.option('--customer-id', type=int, required=True, help='Customer ID')
@with_appcontext
def account_summary(program_id, customer_id):
    """Show an account's balances and tier."""
    try:
        summary = PointsService(program_id).get_account_summary(customer_id)
    except LoyaltyError as e:
        raise click.ClickException(e.message)

    tier = summary['current_tier']
    progress = summary['next_tier_progress']

    click.echo(f"Customer {customer_id} in program {program_id}")
    click.echo(f"  Current points:   {summary['current_points']:.2f}")
    click.echo(f"  Available points: {summary['available_points']:.2f}")
    click.echo(f"  Earned/Redeemed/Expired: {summary['total_earned']:.2f} / "
               f"{summary['total_redeemed']:.2f} / {summary['total_expired']:.2f}")
    click.echo(f"  Tier: {tier['display_name'] if tier else 'none'}")

    if progress['next_tier']:
        click.echo(f"  Next tier: {progress['next_tier']['display_name']} "
                   f"({progress['points_needed']:.2f} pts needed, {progress['progress_percentage']:.0f}%)")

    click.echo(f"  Expires: {summary['expiry_date'] or 'never'}")


def init_app(app):
    """Register loyalty commands with the Flask app."""
    app.cli.add_command(loyalty_cli)
