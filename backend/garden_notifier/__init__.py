"""Garden Notifier - scheduled notification backend for the home garden app."""
