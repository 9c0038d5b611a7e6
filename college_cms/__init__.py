"""College management web app with a role-gated access layer."""

__version__ = "0.1.0"
