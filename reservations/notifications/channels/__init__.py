"""Delivery channels: email transport and calendar invite builder."""
