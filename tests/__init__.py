"""Tests for the Onkyo Control integration."""
