"""Webhook batch processor service."""
