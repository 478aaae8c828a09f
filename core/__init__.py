"""Shared configuration, logging and date helpers."""
