"""Shared utilities for tradeadvisor."""
