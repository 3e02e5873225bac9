# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests for the context engine.

These tests run the engine, cache, watcher and collection log together
against a real workspace on disk.
"""
