"""
Test suite for the Carebook appointment service.

Contains unit tests for the token, authorization and lifecycle layers and
integration tests that drive the HTTP API against a SQLite database.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
