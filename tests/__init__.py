"""Tests for the Room Release integration."""
