"""
HomeCtl - Household Automation Core
=====================================
Members, door locks, and devices, controlled directly or through a
voice/chat assistant:
- Parses assistant replies into commands
- Checks every command against the member's policy
- Drives doors and devices, locally or through a remote backend
- Keeps an audit trail of door activity
"""

__version__ = "1.0.0"
