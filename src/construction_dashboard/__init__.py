"""Construction Dashboard package.

Objective:
    Provide a Python implementation of a small-business construction
    operations dashboard:
    - Track projects, stakeholders, communications (RFIs, submittals, change
      orders, lien releases) and sales prospects in JSON-backed collections.
    - Generate per-recipient daily status emails with urgency bucketing and
      project health scoring.
    - Deliver emails through Microsoft 365 (Outlook) with a mail-link fallback,
      and back up data to OneDrive.

Key modules:
    - :mod:`construction_dashboard.dates`:
        Due-date arithmetic shared by every categorization.
    - :mod:`construction_dashboard.store`:
        JSON file collections, cascade deletes, backup/restore.
    - :mod:`construction_dashboard.emails`:
        Bucketing, action items, health rating and email body assembly.
    - :mod:`construction_dashboard.auth` / :mod:`construction_dashboard.microsoft365`:
        Microsoft Graph authentication and OneDrive/Outlook operations.
    - :mod:`construction_dashboard.orchestrator`:
        Batch generation and best-effort delivery.
    - :mod:`construction_dashboard.scheduler`:
        Once-per-minute send-time check and auto backup.
    - :mod:`construction_dashboard.cli` / :mod:`construction_dashboard.webapp`:
        User-facing entrypoints.
"""

__version__ = "0.1.0"
