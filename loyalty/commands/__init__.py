"""
CLI Commands for the loyalty engine.

Usage:
    flask loyalty expire-points                          # Expire overdue balances (daily)
    flask loyalty expire-points --program-id 1           # Only one program
    flask loyalty verify --program-id 1 --customer-id 7  # Check an account against its ledger
    flask loyalty summary --program-id 1 --customer-id 7 # Show balances and tier
"""
from .points import init_app as init_points_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_points_commands(app)
