"""Test suite for formcraft.

This package contains tests for:
- Field schema parsing and structural errors
- Submission validation rules and messages
- Form lifecycle transitions
- Embed authorization and grant management
- Repositories, cache, store, events, credits and deferred actions
- The HTTP surface and end-to-end workflows
"""
