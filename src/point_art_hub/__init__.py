"""Point Art Hub - backup, restore and notifications for the shop datastore."""

__version__ = "1.0.0"
