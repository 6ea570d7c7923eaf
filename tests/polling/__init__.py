"""
Polling Tests Package

Tests for the shard-polling and checkpointing bridge.

TEST AXIOMS:
=============
1. Progress is persisted before the next page is requested
2. Expired cursors are never reused
3. One shard's failure never reaches another shard
4. Time is injected - no test sleeps
"""
