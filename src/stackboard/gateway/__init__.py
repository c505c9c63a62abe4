"""Gateways: every interaction with the outside world goes through one of these."""
