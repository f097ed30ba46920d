"""Wired (P7) chat client that relays chat events to push notifications."""
