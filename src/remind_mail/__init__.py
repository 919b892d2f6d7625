"""RemindMail: scheduled email reminders delivered over SMTP."""

__version__ = "0.1.0"
