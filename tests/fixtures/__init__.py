"""Test data builders and fake upstreams."""
