"""
Outbound notifications for the Sales Room service.
"""

from .slack import QualificationNotification, SlackNotifier

__all__ = ["QualificationNotification", "SlackNotifier"]
