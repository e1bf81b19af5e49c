"""ChallengeHub: time-boxed challenges, submission review and notifications."""

__version__ = "0.1.0"
