"""Test support utilities: an in-memory event store gateway for engine scenarios."""
