"""Telegram bot for logging eaten food and daily calories."""
