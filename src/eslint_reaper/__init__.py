"""Watchdog that reaps excess ESLint language-service processes."""
