"""Form validation, booking wizard and data refresh services."""
