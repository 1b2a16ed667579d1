"""Integration tests that drive a real ``git`` binary in temporary repositories."""
