"""CLI module for devicebridge."""
